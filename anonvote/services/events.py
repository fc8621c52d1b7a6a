"""Event lifecycle controller: the only mutation surface of the voting core.

Every mutating operation runs as one read-modify-write of the ``voting_events``
row inside a serializable transaction (``BEGIN IMMEDIATE`` on SQLite), with
``SELECT ... FOR UPDATE`` on the row and the row's ``lock_version`` check. Reads go straight to
the latest committed state.
"""
from __future__ import annotations

import enum
import hmac
import logging
import secrets
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from anonvote.core.config import Settings, get_settings
from anonvote.models import InvitationToken, PowerMode, VotingEvent, as_utc
from anonvote.obs import MEMBER_REGISTRATION_COUNTER, VOTE_OUTCOME_COUNTER, traced_operation
from anonvote.services.accumulator import Accumulator, AccumulatorError, CapacityPolicy
from anonvote.services.ballot import (
    BallotStore,
    CastOutcome,
    Option,
    RejectionReason,
    VotingWindow,
    WindowState,
    authorization_for_identity,
    build_options,
    plurality_option,
)
from anonvote.services.identity import IdentityDirectory, normalize_contact
from anonvote.services.notifications import InvitationMessage
from anonvote.services.tokens import TokenError, TokenLedger

logger = logging.getLogger(__name__)

_UNSET: object = object()
_SERIALIZATION_FAILURE = "40001"


class EventError(RuntimeError):
    """Base exception for event lifecycle errors."""


class EventNotFoundError(EventError):
    """Raised when the event id does not exist."""


class EventConfigurationError(EventError):
    """Raised for malformed event configuration, before anything is written."""


class VotingStartedError(EventError):
    """Raised when options would be replaced after voting has started."""


class EventConcurrencyError(EventError):
    """Raised when the optimistic version check detects a concurrent update."""


class TokenEventMismatchError(EventError):
    """Raised when an invitation token belongs to a different event."""


class EventState(str, enum.Enum):
    DRAFT = "DRAFT"
    CONFIGURED = "CONFIGURED"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(slots=True, frozen=True)
class RegistrationResult:
    identity_id: int
    root: str
    members: list[int]


def event_window(event: VotingEvent) -> VotingWindow:
    return VotingWindow(opens_at=as_utc(event.opens_at), closes_at=as_utc(event.closes_at))


def event_state(event: VotingEvent, now: datetime) -> EventState:
    """Derive the lifecycle state from configuration and ``now``; never stored."""
    if not event.options:
        return EventState.DRAFT
    window_state = event_window(event).state_at(now)
    if window_state is WindowState.OPEN:
        return EventState.OPEN
    if window_state is WindowState.CLOSED:
        return EventState.CLOSED
    return EventState.CONFIGURED


def _validate_options(options: Sequence[str]) -> list[str]:
    cleaned = [option.strip() for option in options]
    if len(cleaned) < 2:
        raise EventConfigurationError("At least two options are required")
    if any(not option for option in cleaned):
        raise EventConfigurationError("Option text must not be empty")
    return cleaned


def _validate_power_mode(power_mode: PowerMode, weighted_points: int | None) -> int | None:
    if power_mode is PowerMode.SIMPLE:
        return None
    if weighted_points is None or weighted_points < 2:
        raise EventConfigurationError("Weighted voting requires at least 2 points to distribute")
    return weighted_points


def _build_window(opens_at: datetime | None, closes_at: datetime | None) -> VotingWindow:
    try:
        return VotingWindow(opens_at=as_utc(opens_at), closes_at=as_utc(closes_at))
    except ValueError as exc:
        raise EventConfigurationError(str(exc)) from exc


def _is_serialization_failure(exc: DBAPIError) -> bool:
    """True when the database aborted the transaction to keep it serializable (SQLSTATE 40001)."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == _SERIALIZATION_FAILURE


@contextmanager
def _event_write_lock(session: Session) -> Iterator[None]:
    """Serializable transaction scope; row locks are taken by the caller."""

    bind = session.get_bind()
    if bind is None:
        raise RuntimeError("Session is not bound to an engine")

    # The isolation statement has to open the transaction.
    if session.in_transaction():
        session.commit()

    if bind.dialect.name == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))
    else:
        session.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))

    try:
        yield
        session.commit()
    except DBAPIError as exc:
        session.rollback()
        if _is_serialization_failure(exc):
            raise EventConcurrencyError("Voting event was modified concurrently, retry the request") from exc
        raise
    except Exception:
        session.rollback()
        raise


class EventLifecycleController:
    """Composes the accumulator, ballot store and token ledger for one event at a time."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        ledger: TokenLedger | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._now = now_fn or (lambda: datetime.now(UTC))
        self._directory = IdentityDirectory(session)
        self._ledger = ledger or TokenLedger(
            session, settings=self._settings, directory=self._directory, now_fn=self._now
        )

    @property
    def ledger(self) -> TokenLedger:
        return self._ledger

    # -- reads ---------------------------------------------------------------

    def get_event(self, event_id: int) -> VotingEvent:
        event = self._session.get(VotingEvent, event_id)
        if event is None:
            raise EventNotFoundError(f"Voting event '{event_id}' was not found")
        return event

    def state(self, event: VotingEvent) -> EventState:
        return event_state(event, self._now())

    def members(self, event_id: int) -> list[int]:
        return self._accumulator_for(self.get_event(event_id)).members()

    def results(self, event_id: int) -> list[Option]:
        event = self.get_event(event_id)
        return [option for option, _ in BallotStore.from_records(event.options, event.nullifiers).results()]

    def list_invited(self, event_id: int) -> list[dict]:
        return list(self.get_event(event_id).invited_participants or [])

    def admin_authenticate(self, event_id: int, presented_token: str) -> bool:
        event = self.get_event(event_id)
        return hmac.compare_digest(event.admin_token.encode("utf-8"), presented_token.encode("utf-8"))

    # -- creation and configuration -----------------------------------------

    def create_event(
        self,
        *,
        name: str,
        options: Sequence[str] = (),
        power_mode: PowerMode = PowerMode.SIMPLE,
        weighted_points: int | None = None,
        opens_at: datetime | None = None,
        closes_at: datetime | None = None,
        capacity: int | None = None,
        admin_identity_id: int | None = None,
    ) -> VotingEvent:
        cleaned_name = name.strip()
        if not cleaned_name:
            raise EventConfigurationError("Event name is required")
        option_texts = _validate_options(options) if options else []
        points = _validate_power_mode(power_mode, weighted_points)
        window = _build_window(opens_at, closes_at)
        declared_capacity = capacity if capacity is not None else self._settings.accumulator_default_capacity
        try:
            root = Accumulator.initialize(declared_capacity)
        except AccumulatorError as exc:
            raise EventConfigurationError(str(exc)) from exc
        if admin_identity_id is not None:
            self._directory.get(admin_identity_id)

        event = VotingEvent(
            name=cleaned_name,
            options=[option.to_dict() for option in build_options(option_texts)],
            power_mode=power_mode,
            weighted_points=points,
            opens_at=window.opens_at,
            closes_at=window.closes_at,
            admin_token=secrets.token_urlsafe(self._settings.admin_token_bytes),
            admin_identity_id=admin_identity_id,
            accumulator_root=root,
            accumulator_leaves=[],
            accumulator_capacity=declared_capacity,
            nullifiers=[],
            invited_participants=[],
        )
        self._session.add(event)
        self._session.commit()
        self._session.refresh(event)
        logger.info("created voting event", extra={"event_id": event.id, "capacity": declared_capacity})
        return event

    def configure(
        self,
        event_id: int,
        *,
        options: Sequence[str] | None = None,
        power_mode: PowerMode | None = None,
        weighted_points: int | None | object = _UNSET,
        opens_at: datetime | None | object = _UNSET,
        closes_at: datetime | None | object = _UNSET,
    ) -> VotingEvent:
        """Apply a partial configuration change.

        Replacing options resets every tally to zero, so it is refused once the
        window has opened or any vote was accepted.
        """

        option_texts = _validate_options(options) if options is not None else None

        with traced_operation("voting.configure", event_id=event_id), self._locked(event_id) as event:
            mode = power_mode or event.power_mode
            points_input = event.weighted_points if weighted_points is _UNSET else weighted_points
            points = _validate_power_mode(mode, points_input)  # type: ignore[arg-type]
            window = _build_window(
                event.opens_at if opens_at is _UNSET else opens_at,  # type: ignore[arg-type]
                event.closes_at if closes_at is _UNSET else closes_at,  # type: ignore[arg-type]
            )

            if option_texts is not None:
                if event.nullifiers or event_state(event, self._now()) in (EventState.OPEN, EventState.CLOSED):
                    raise VotingStartedError("Options cannot be replaced after voting has started")
                event.options = [option.to_dict() for option in build_options(option_texts)]

            event.power_mode = mode
            event.weighted_points = points
            event.opens_at = window.opens_at
            event.closes_at = window.closes_at

        self._session.refresh(event)
        return event

    # -- invitations ---------------------------------------------------------

    def invite(self, event_id: int, contact: str) -> InvitationToken:
        return self.invite_batch(event_id, [contact])[0]

    def invite_batch(self, event_id: int, contacts: Iterable[str]) -> list[InvitationToken]:
        """Issue one token per distinct contact; delivery is left to the caller after commit."""

        normalized: list[str] = []
        for contact in contacts:
            value = normalize_contact(contact)
            if value not in normalized:
                normalized.append(value)
        if not normalized:
            raise EventConfigurationError("At least one contact is required")

        with traced_operation("voting.invite", event_id=event_id), self._locked(event_id) as event:
            invited = list(event.invited_participants or [])
            known = {entry["contact"] for entry in invited}
            tokens: list[InvitationToken] = []
            for contact in normalized:
                token = self._ledger.issue(event.id, contact)
                tokens.append(token)
                if contact not in known:
                    invited.append(
                        {
                            "contact": contact,
                            "identity_id": token.identity_id,
                            "invited_at": self._now().isoformat(),
                        }
                    )
                    known.add(contact)
            event.invited_participants = invited
        return tokens

    def invitation_messages(self, event_id: int, tokens: Iterable[InvitationToken]) -> list[InvitationMessage]:
        event = self.get_event(event_id)
        window = event_window(event)
        return [
            InvitationMessage(
                contact=token.contact,
                token=token.token,
                event_id=event.id,
                event_name=event.name,
                opens_at=window.opens_at,
                closes_at=window.closes_at,
            )
            for token in tokens
        ]

    def mark_invitations_sent(self, event_id: int) -> VotingEvent:
        with self._locked(event_id) as event:
            event.invitations_sent_at = self._now()
        self._session.refresh(event)
        return event

    def save_blockchain_data(self, event_id: int, data: Mapping[str, object]) -> VotingEvent:
        with self._locked(event_id) as event:
            event.blockchain_data = dict(data)
        self._session.refresh(event)
        return event

    # -- membership ----------------------------------------------------------

    def register(self, event_id: int, token: str, commitment: str) -> RegistrationResult:
        """Validate the token, insert the commitment, then burn the token.

        Any failure rolls the whole operation back, leaving the token reusable.
        """

        cleaned = commitment.strip()
        if not cleaned:
            raise EventConfigurationError("Commitment must not be empty")

        try:
            with traced_operation("voting.register", event_id=event_id), self._locked(event_id) as event:
                identity_id, token_event_id = self._ledger.validate(token).require()
                if token_event_id != event.id:
                    raise TokenEventMismatchError("Invitation token belongs to a different voting event")

                accumulator = self._accumulator_for(event)
                root = accumulator.insert(identity_id, cleaned)
                event.accumulator_leaves = accumulator.to_records()
                event.accumulator_root = root

                self._ledger.consume(token)
                result = RegistrationResult(
                    identity_id=identity_id, root=root, members=accumulator.members()
                )
        except (EventError, TokenError, AccumulatorError) as exc:
            MEMBER_REGISTRATION_COUNTER.labels(outcome=type(exc).__name__).inc()
            raise

        MEMBER_REGISTRATION_COUNTER.labels(outcome="REGISTERED").inc()
        logger.info("registered member", extra={"event_id": event_id, "member_count": len(result.members)})
        return result

    def remove_member(self, event_id: int, identity_id: int) -> str:
        with traced_operation("voting.remove_member", event_id=event_id), self._locked(event_id) as event:
            accumulator = self._accumulator_for(event)
            before = len(accumulator)
            root = accumulator.remove(identity_id)
            if len(accumulator) != before:
                event.accumulator_leaves = accumulator.to_records()
                event.accumulator_root = root
        return root

    # -- voting --------------------------------------------------------------

    def cast(
        self,
        event_id: int,
        identity_id: int,
        option_index: int | None = None,
        *,
        points: Mapping[int, int] | None = None,
    ) -> CastOutcome:
        """Record one vote; rejections are returned, not raised.

        Weighted ballots arrive as a point distribution and are reduced to the
        option holding the plurality of points. The tally always counts one
        whole vote.
        """

        with traced_operation("voting.cast", event_id=event_id), self._locked(event_id) as event:
            selected = self._select_option(event, option_index, points)
            now = self._now()
            window = event_window(event)
            ballot = BallotStore.from_records(event.options, event.nullifiers)

            if (
                window.state_at(now) is WindowState.OPEN
                and self._settings.require_membership_to_vote
                and identity_id not in self._accumulator_for(event)
            ):
                outcome = CastOutcome.reject(RejectionReason.NOT_MEMBER)
            else:
                outcome = ballot.cast(window, authorization_for_identity(identity_id), selected, now=now)

            if outcome.accepted:
                event.options = ballot.option_records()
                event.nullifiers = ballot.nullifiers

        VOTE_OUTCOME_COUNTER.labels(outcome="ACCEPTED" if outcome.accepted else outcome.reason.value).inc()
        return outcome

    # -- internals -----------------------------------------------------------

    @contextmanager
    def _locked(self, event_id: int) -> Iterator[VotingEvent]:
        with _event_write_lock(self._session):
            statement = (
                select(VotingEvent)
                .where(VotingEvent.id == event_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            event = self._session.scalars(statement).first()
            if event is None:
                raise EventNotFoundError(f"Voting event '{event_id}' was not found")
            yield event
            try:
                self._session.flush()
            except StaleDataError as exc:
                raise EventConcurrencyError("Voting event was modified concurrently, retry the request") from exc

    def _accumulator_for(self, event: VotingEvent) -> Accumulator:
        return Accumulator.from_records(
            event.accumulator_capacity,
            event.accumulator_leaves or [],
            policy=CapacityPolicy(self._settings.accumulator_capacity_policy),
        )

    @staticmethod
    def _select_option(
        event: VotingEvent, option_index: int | None, points: Mapping[int, int] | None
    ) -> int:
        if points is None:
            if option_index is None:
                raise EventConfigurationError("An option index or a point distribution is required")
            return option_index
        if event.power_mode is not PowerMode.WEIGHTED or event.weighted_points is None:
            raise EventConfigurationError("Point distributions are only accepted for weighted events")
        return plurality_option(points, event.weighted_points)


__all__ = [
    "EventConcurrencyError",
    "EventConfigurationError",
    "EventError",
    "EventLifecycleController",
    "EventNotFoundError",
    "EventState",
    "RegistrationResult",
    "TokenEventMismatchError",
    "VotingStartedError",
    "event_state",
    "event_window",
]
