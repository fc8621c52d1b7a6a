"""Initial schema for identities, voting events and invitation tokens."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def upgrade() -> None:  # noqa: D401
    """Create initial tables and constraints."""

    # create_table must not emit the types a second time.
    power_mode = postgresql.ENUM("SIMPLE", "WEIGHTED", name="power_mode", create_type=False)
    tally_rule = postgresql.ENUM("UNIT", name="tally_rule", create_type=False)

    power_mode.create(op.get_bind(), checkfirst=True)
    tally_rule.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "identities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("wallet_address", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("email", name="uq_identities_email"),
        sa.UniqueConstraint("wallet_address", name="uq_identities_wallet_address"),
    )

    op.create_table(
        "voting_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("power_mode", power_mode, nullable=False, server_default="SIMPLE"),
        sa.Column("weighted_points", sa.Integer(), nullable=True),
        sa.Column("tally_rule", tally_rule, nullable=False, server_default="UNIT"),
        sa.Column("opens_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closes_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_token", sa.String(length=128), nullable=False),
        sa.Column("admin_identity_id", sa.Integer(), nullable=True),
        sa.Column("accumulator_root", sa.String(length=66), nullable=False),
        sa.Column("accumulator_leaves", sa.JSON(), nullable=False),
        sa.Column("accumulator_capacity", sa.Integer(), nullable=False),
        sa.Column("nullifiers", sa.JSON(), nullable=False),
        sa.Column("invited_participants", sa.JSON(), nullable=False),
        sa.Column("invitations_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("blockchain_data", sa.JSON(), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["admin_identity_id"], ["identities.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "invitation_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("identity_id", sa.Integer(), nullable=False),
        sa.Column("contact", sa.String(length=320), nullable=False),
        sa.Column("consumed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["voting_events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("token", name="uq_invitation_tokens_token"),
    )
    op.create_index("ix_invitation_tokens_event_id", "invitation_tokens", ["event_id"])
    op.create_index("ix_invitation_tokens_identity_id", "invitation_tokens", ["identity_id"])


def downgrade() -> None:  # noqa: D401
    """Drop all tables created in upgrade."""

    op.drop_index("ix_invitation_tokens_identity_id", table_name="invitation_tokens")
    op.drop_index("ix_invitation_tokens_event_id", table_name="invitation_tokens")
    op.drop_table("invitation_tokens")
    op.drop_table("voting_events")
    op.drop_table("identities")

    _drop_enum("tally_rule")
    _drop_enum("power_mode")
