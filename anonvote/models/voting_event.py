"""Voting event ORM model."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anonvote.models.base import Base, TimestampMixin


class PowerMode(str, enum.Enum):
    SIMPLE = "SIMPLE"
    WEIGHTED = "WEIGHTED"


class TallyRule(str, enum.Enum):
    """How accepted votes aggregate. ``UNIT``: one whole vote per cast, whatever the power mode."""

    UNIT = "UNIT"


class VotingEvent(TimestampMixin, Base):
    """One election aggregate: options, membership accumulator, anti-replay set and invitations.

    Options, leaves, nullifiers and the invited ledger are JSON lists that are always
    replaced wholesale on mutation so the ORM detects the change.
    """

    __tablename__ = "voting_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    options: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    power_mode: Mapped[PowerMode] = mapped_column(
        SAEnum(PowerMode, name="power_mode"), nullable=False, default=PowerMode.SIMPLE
    )
    weighted_points: Mapped[int | None] = mapped_column(Integer)
    tally_rule: Mapped[TallyRule] = mapped_column(
        SAEnum(TallyRule, name="tally_rule"), nullable=False, default=TallyRule.UNIT
    )
    opens_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closes_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    admin_token: Mapped[str] = mapped_column(String(128), nullable=False)
    admin_identity_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("identities.id", ondelete="SET NULL"), nullable=True
    )

    accumulator_root: Mapped[str] = mapped_column(String(66), nullable=False)
    accumulator_leaves: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    accumulator_capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    nullifiers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    invited_participants: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    invitations_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    blockchain_data: Mapped[dict | None] = mapped_column(JSON)

    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    admin_identity = relationship("Identity")
    invitation_tokens = relationship(
        "InvitationToken", back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )

    __mapper_args__ = {"version_id_col": lock_version}


__all__ = ["PowerMode", "TallyRule", "VotingEvent"]
