"""Identity directory: resolves contact addresses to stable integer identities."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from anonvote.models import Identity

logger = logging.getLogger(__name__)


class IdentityError(RuntimeError):
    """Base exception for identity directory errors."""


class IdentityNotFoundError(IdentityError):
    """Raised when an identity id is unknown."""


class IdentityConflictError(IdentityError):
    """Raised when a concurrent request created the same contact first."""


class InvalidContactError(IdentityError):
    """Raised for empty or malformed contact addresses."""


def is_email(contact: str) -> bool:
    return "@" in contact


def normalize_contact(contact: str) -> str:
    value = contact.strip()
    if not value:
        raise InvalidContactError("Contact address must not be empty")
    if is_email(value):
        local, _, domain = value.partition("@")
        if not local or not domain:
            raise InvalidContactError(f"Invalid email address '{value}'")
        return value.lower()
    return value


class IdentityDirectory:
    """Find-or-create lookups over the ``identities`` table.

    Never commits; the caller owns the transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, identity_id: int) -> Identity:
        identity = self._session.get(Identity, identity_id)
        if identity is None:
            raise IdentityNotFoundError(f"Identity '{identity_id}' was not found")
        return identity

    def resolve_or_create(self, contact: str) -> Identity:
        normalized = normalize_contact(contact)
        if is_email(normalized):
            return self.resolve_or_create_by_email(normalized)
        return self.resolve_or_create_by_wallet(normalized)

    def resolve_or_create_by_email(self, email: str) -> Identity:
        normalized = normalize_contact(email)
        if not is_email(normalized):
            raise InvalidContactError(f"Invalid email address '{email}'")
        existing = self._session.scalars(select(Identity).where(Identity.email == normalized)).first()
        if existing is not None:
            return existing
        return self._create(Identity(email=normalized))

    def resolve_or_create_by_wallet(self, wallet_address: str) -> Identity:
        normalized = normalize_contact(wallet_address)
        existing = self._session.scalars(
            select(Identity).where(Identity.wallet_address == normalized)
        ).first()
        if existing is not None:
            return existing
        return self._create(Identity(wallet_address=normalized))

    def _create(self, identity: Identity) -> Identity:
        self._session.add(identity)
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise IdentityConflictError("Identity was created concurrently, retry the request") from exc
        logger.info("created identity", extra={"identity_id": identity.id})
        return identity


__all__ = [
    "IdentityConflictError",
    "IdentityDirectory",
    "IdentityError",
    "IdentityNotFoundError",
    "InvalidContactError",
    "is_email",
    "normalize_contact",
]
