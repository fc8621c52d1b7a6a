"""Invitation token ORM model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anonvote.models.base import Base, TimestampMixin


class InvitationToken(TimestampMixin, Base):
    """Single-use registration credential binding a contact's identity to one event."""

    __tablename__ = "invitation_tokens"
    __table_args__ = (
        Index("ix_invitation_tokens_event_id", "event_id"),
        Index("ix_invitation_tokens_identity_id", "identity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("voting_events.id", ondelete="CASCADE"), nullable=False
    )
    identity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    contact: Mapped[str] = mapped_column(String(320), nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    event = relationship("VotingEvent", back_populates="invitation_tokens")
    identity = relationship("Identity", back_populates="invitation_tokens")


__all__ = ["InvitationToken"]
