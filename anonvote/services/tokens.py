"""Invitation token ledger: issue, validate and consume single-use registration tokens."""
from __future__ import annotations

import enum
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from anonvote.core.config import Settings, get_settings
from anonvote.models import InvitationToken, as_utc
from anonvote.services.identity import IdentityDirectory, normalize_contact

logger = logging.getLogger(__name__)


class TokenInvalidReason(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"


class TokenError(RuntimeError):
    """Base exception for token ledger errors."""


class TokenInvalidError(TokenError):
    """Raised by callers that require a usable token and got an invalid one."""

    def __init__(self, reason: TokenInvalidReason) -> None:
        super().__init__(f"Invitation token is invalid: {reason.value}")
        self.reason = reason


@dataclass(slots=True, frozen=True)
class TokenValidation:
    """Outcome of :meth:`TokenLedger.validate`; never raised."""

    valid: bool
    identity_id: int | None = None
    event_id: int | None = None
    contact: str | None = None
    reason: TokenInvalidReason | None = None

    @classmethod
    def invalid(cls, reason: TokenInvalidReason) -> "TokenValidation":
        return cls(valid=False, reason=reason)

    def require(self) -> tuple[int, int]:
        """Return ``(identity_id, event_id)`` of a usable token or raise :class:`TokenInvalidError`."""
        if self.reason is not None:
            raise TokenInvalidError(self.reason)
        if not self.valid or self.identity_id is None or self.event_id is None:
            raise TokenInvalidError(TokenInvalidReason.NOT_FOUND)
        return self.identity_id, self.event_id


def mask_token(token: str) -> str:
    return f"{token[:4]}***" if len(token) > 8 else "***"


class TokenLedger:
    """Persists invitation tokens; never commits, the caller owns the transaction."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        directory: IdentityDirectory | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._directory = directory or IdentityDirectory(session)
        self._now = now_fn or (lambda: datetime.now(UTC))

    def issue(self, event_id: int, contact: str) -> InvitationToken:
        normalized = normalize_contact(contact)
        identity = self._directory.resolve_or_create(normalized)
        token = InvitationToken(
            token=secrets.token_urlsafe(self._settings.invitation_token_bytes),
            event_id=event_id,
            identity_id=identity.id,
            contact=normalized,
            consumed=False,
            expires_at=self._now() + timedelta(days=self._settings.invitation_token_ttl_days),
        )
        self._session.add(token)
        self._session.flush()
        logger.info(
            "issued invitation token",
            extra={"event_id": event_id, "identity_id": identity.id, "token": mask_token(token.token)},
        )
        return token

    def get(self, token: str) -> InvitationToken | None:
        return self._session.scalars(select(InvitationToken).where(InvitationToken.token == token)).first()

    def validate(self, token: str) -> TokenValidation:
        record = self.get(token)
        if record is None:
            return TokenValidation.invalid(TokenInvalidReason.NOT_FOUND)
        if record.consumed:
            return TokenValidation.invalid(TokenInvalidReason.ALREADY_USED)
        if self._now() > as_utc(record.expires_at):
            return TokenValidation.invalid(TokenInvalidReason.EXPIRED)
        return TokenValidation(
            valid=True,
            identity_id=record.identity_id,
            event_id=record.event_id,
            contact=record.contact,
        )

    def consume(self, token: str) -> None:
        """Flip the consumed flag. Does not check expiry; call :meth:`validate` first."""
        record = self.get(token)
        if record is None or record.consumed:
            return
        record.consumed = True
        self._session.flush()
        logger.info(
            "consumed invitation token",
            extra={"event_id": record.event_id, "token": mask_token(record.token)},
        )


__all__ = [
    "TokenError",
    "TokenInvalidError",
    "TokenInvalidReason",
    "TokenLedger",
    "TokenValidation",
    "mask_token",
]
