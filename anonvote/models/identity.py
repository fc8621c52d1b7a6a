"""Identity ORM model."""
from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anonvote.models.base import Base, TimestampMixin


class Identity(TimestampMixin, Base):
    """Stable participant handle resolved from an email or wallet address and reused across events."""

    __tablename__ = "identities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str | None] = mapped_column(String(320), unique=True)
    wallet_address: Mapped[str | None] = mapped_column(String(128), unique=True)

    invitation_tokens = relationship("InvitationToken", back_populates="identity")


__all__ = ["Identity"]
