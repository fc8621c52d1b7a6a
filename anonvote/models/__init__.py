"""ORM models package."""
from .base import Base, TimestampMixin, as_utc
from .identity import Identity
from .invitation_token import InvitationToken
from .voting_event import PowerMode, TallyRule, VotingEvent

__all__ = [
    "Base",
    "Identity",
    "InvitationToken",
    "PowerMode",
    "TallyRule",
    "TimestampMixin",
    "VotingEvent",
    "as_utc",
]
