"""Ballot store: option tallies and the anti-replay set for one event."""
from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

VoteAuthorization = str
"""Opaque, comparable key recorded once per accepted vote.

Derived from the voter identity today; a proof-verified nullifier can take its place.
"""


class RejectionReason(str, enum.Enum):
    NOT_OPEN = "NOT_OPEN"
    CLOSED = "CLOSED"
    NOT_MEMBER = "NOT_MEMBER"
    ALREADY_VOTED = "ALREADY_VOTED"
    INVALID_OPTION = "INVALID_OPTION"


class WindowState(str, enum.Enum):
    NOT_OPEN = "NOT_OPEN"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PointDistributionError(ValueError):
    """Raised when a weighted point distribution cannot be reduced to a single option."""


@dataclass(slots=True, frozen=True)
class VotingWindow:
    opens_at: datetime | None = None
    closes_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.opens_at is not None and self.closes_at is not None and self.opens_at >= self.closes_at:
            raise ValueError("Voting window must open before it closes")

    def state_at(self, now: datetime) -> WindowState:
        if self.opens_at is None or now < self.opens_at:
            return WindowState.NOT_OPEN
        if self.closes_at is not None and now > self.closes_at:
            return WindowState.CLOSED
        return WindowState.OPEN


@dataclass(slots=True)
class Option:
    index: int
    text: str
    votes: int = 0

    def to_dict(self) -> dict[str, int | str]:
        return {"index": self.index, "text": self.text, "votes": self.votes}


@dataclass(slots=True, frozen=True)
class CastOutcome:
    accepted: bool
    reason: RejectionReason | None = None
    option_index: int | None = None

    @classmethod
    def accept(cls, option_index: int) -> "CastOutcome":
        return cls(accepted=True, option_index=option_index)

    @classmethod
    def reject(cls, reason: RejectionReason) -> "CastOutcome":
        return cls(accepted=False, reason=reason)


def authorization_for_identity(identity_id: int) -> VoteAuthorization:
    return f"identity:{identity_id}"


def build_options(texts: Iterable[str]) -> list[Option]:
    return [Option(index=index, text=text) for index, text in enumerate(texts)]


def plurality_option(distribution: Mapping[int, int], total_points: int) -> int:
    """Reduce a weighted point allocation to the single option index that is submitted.

    Ties go to the lowest option index.
    """

    if any(points < 0 for points in distribution.values()):
        raise PointDistributionError("Points cannot be negative")
    spent = sum(distribution.values())
    if spent == 0:
        raise PointDistributionError("At least one point must be allocated")
    if spent > total_points:
        raise PointDistributionError(f"Allocated {spent} points but only {total_points} are available")
    return max(sorted(distribution), key=lambda index: distribution[index])


class BallotStore:
    """Options with running tallies plus the ordered anti-replay set."""

    def __init__(self, options: Iterable[Option], nullifiers: Iterable[VoteAuthorization] = ()) -> None:
        self._options = list(options)
        self._nullifiers = list(nullifiers)
        self._seen = set(self._nullifiers)

    @classmethod
    def from_records(cls, options: Iterable[dict], nullifiers: Iterable[str]) -> "BallotStore":
        return cls(
            (Option(index=int(item["index"]), text=str(item["text"]), votes=int(item.get("votes", 0))) for item in options),
            nullifiers,
        )

    @property
    def nullifiers(self) -> list[VoteAuthorization]:
        return list(self._nullifiers)

    def has_voted(self, authorization: VoteAuthorization) -> bool:
        return authorization in self._seen

    def cast(
        self,
        window: VotingWindow,
        authorization: VoteAuthorization,
        option_index: int,
        *,
        now: datetime,
    ) -> CastOutcome:
        state = window.state_at(now)
        if state is WindowState.NOT_OPEN:
            return CastOutcome.reject(RejectionReason.NOT_OPEN)
        if state is WindowState.CLOSED:
            return CastOutcome.reject(RejectionReason.CLOSED)
        if self.has_voted(authorization):
            return CastOutcome.reject(RejectionReason.ALREADY_VOTED)
        if not 0 <= option_index < len(self._options):
            return CastOutcome.reject(RejectionReason.INVALID_OPTION)

        self._options[option_index].votes += 1
        self._nullifiers.append(authorization)
        self._seen.add(authorization)
        return CastOutcome.accept(option_index)

    def results(self) -> list[tuple[Option, int]]:
        return [(Option(option.index, option.text, option.votes), option.votes) for option in self._options]

    def total_votes(self) -> int:
        return sum(option.votes for option in self._options)

    def option_records(self) -> list[dict[str, int | str]]:
        return [option.to_dict() for option in self._options]


__all__ = [
    "BallotStore",
    "CastOutcome",
    "Option",
    "PointDistributionError",
    "RejectionReason",
    "VoteAuthorization",
    "VotingWindow",
    "WindowState",
    "authorization_for_identity",
    "build_options",
    "plurality_option",
]
