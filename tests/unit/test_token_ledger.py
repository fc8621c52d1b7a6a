from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from anonvote.core.config import Settings
from anonvote.models import Identity
from anonvote.services.events import EventLifecycleController
from anonvote.services.identity import IdentityDirectory, IdentityNotFoundError, InvalidContactError
from anonvote.services.tokens import TokenInvalidError, TokenInvalidReason, TokenLedger, mask_token


@pytest.fixture()
def event_id(controller: EventLifecycleController) -> int:
    return controller.create_event(name="Token ledger", options=["A", "B"]).id


@pytest.fixture()
def ledger(db_session: Session, settings: Settings, clock) -> TokenLedger:
    return TokenLedger(db_session, settings=settings, now_fn=clock)


def test_issued_token_validates_with_identity_and_event(ledger: TokenLedger, event_id: int, db_session: Session) -> None:
    token = ledger.issue(event_id, "  Alice@Example.com ")
    db_session.commit()

    validation = ledger.validate(token.token)

    assert validation.valid
    assert validation.event_id == event_id
    assert validation.contact == "alice@example.com"
    identity = db_session.get(Identity, validation.identity_id)
    assert identity is not None and identity.email == "alice@example.com"
    assert validation.require() == (identity.id, event_id)


def test_tokens_for_same_contact_share_identity(ledger: TokenLedger, event_id: int) -> None:
    first = ledger.issue(event_id, "bob@example.com")
    second = ledger.issue(event_id, "BOB@example.com")

    assert first.token != second.token
    assert first.identity_id == second.identity_id


def test_unknown_token_is_not_found(ledger: TokenLedger) -> None:
    validation = ledger.validate("missing-token")

    assert not validation.valid
    assert validation.reason is TokenInvalidReason.NOT_FOUND
    with pytest.raises(TokenInvalidError) as excinfo:
        validation.require()
    assert excinfo.value.reason is TokenInvalidReason.NOT_FOUND


def test_consumed_token_reports_already_used(ledger: TokenLedger, event_id: int) -> None:
    token = ledger.issue(event_id, "carol@example.com")
    ledger.consume(token.token)

    assert ledger.validate(token.token).reason is TokenInvalidReason.ALREADY_USED
    ledger.consume(token.token)
    ledger.consume("never-issued")


def test_token_expires_after_ttl(ledger: TokenLedger, event_id: int, clock, db_session: Session) -> None:
    token = ledger.issue(event_id, "dave@example.com")
    db_session.commit()

    clock.advance(days=6, hours=23)
    assert ledger.validate(token.token).valid

    clock.advance(hours=2)
    assert ledger.validate(token.token).reason is TokenInvalidReason.EXPIRED


def test_wallet_contacts_resolve_by_wallet_address(ledger: TokenLedger, event_id: int, db_session: Session) -> None:
    token = ledger.issue(event_id, "0xAbC123")
    identity = db_session.get(Identity, token.identity_id)

    assert identity is not None
    assert identity.wallet_address == "0xAbC123"
    assert identity.email is None


def test_mask_token_hides_most_of_the_value() -> None:
    assert mask_token("abcdefghijkl") == "abcd***"
    assert mask_token("short") == "***"


@pytest.mark.parametrize("contact", ["", "   ", "@example.com", "alice@"])
def test_invalid_contacts_are_rejected(db_session: Session, contact: str) -> None:
    with pytest.raises(InvalidContactError):
        IdentityDirectory(db_session).resolve_or_create(contact)


def test_directory_get_raises_for_unknown_identity(db_session: Session) -> None:
    with pytest.raises(IdentityNotFoundError):
        IdentityDirectory(db_session).get(404)


def test_directory_find_or_create_is_stable(db_session: Session) -> None:
    directory = IdentityDirectory(db_session)
    created = directory.resolve_or_create_by_email("erin@example.com")
    db_session.commit()

    assert directory.resolve_or_create("ERIN@example.com").id == created.id
    with pytest.raises(InvalidContactError):
        directory.resolve_or_create_by_email("not-an-email")
