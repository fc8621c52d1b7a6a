from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from anonvote.services.ballot import (
    BallotStore,
    PointDistributionError,
    RejectionReason,
    VotingWindow,
    WindowState,
    authorization_for_identity,
    build_options,
    plurality_option,
)

OPENS = datetime(2026, 5, 1, 9, 0, tzinfo=UTC)
CLOSES = datetime(2026, 5, 1, 17, 0, tzinfo=UTC)
WINDOW = VotingWindow(opens_at=OPENS, closes_at=CLOSES)
DURING = OPENS + timedelta(hours=1)


def _store() -> BallotStore:
    return BallotStore(build_options(["Yes", "No", "Abstain"]))


def test_window_requires_open_before_close() -> None:
    with pytest.raises(ValueError):
        VotingWindow(opens_at=CLOSES, closes_at=OPENS)
    with pytest.raises(ValueError):
        VotingWindow(opens_at=OPENS, closes_at=OPENS)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (OPENS - timedelta(seconds=1), WindowState.NOT_OPEN),
        (OPENS, WindowState.OPEN),
        (CLOSES, WindowState.OPEN),
        (CLOSES + timedelta(seconds=1), WindowState.CLOSED),
    ],
)
def test_window_boundaries(now: datetime, expected: WindowState) -> None:
    assert WINDOW.state_at(now) is expected


def test_window_without_opening_time_is_never_open() -> None:
    assert VotingWindow().state_at(DURING) is WindowState.NOT_OPEN


def test_open_ended_window_stays_open() -> None:
    window = VotingWindow(opens_at=OPENS)
    assert window.state_at(OPENS + timedelta(days=365)) is WindowState.OPEN


def test_accepted_vote_increments_exactly_one_tally() -> None:
    store = _store()
    outcome = store.cast(WINDOW, authorization_for_identity(1), 1, now=DURING)

    assert outcome.accepted
    assert outcome.option_index == 1
    assert [votes for _, votes in store.results()] == [0, 1, 0]
    assert store.total_votes() == len(store.nullifiers) == 1


def test_second_vote_with_same_authorization_is_rejected() -> None:
    store = _store()
    authorization = authorization_for_identity(5)
    store.cast(WINDOW, authorization, 0, now=DURING)

    outcome = store.cast(WINDOW, authorization, 2, now=DURING)

    assert not outcome.accepted
    assert outcome.reason is RejectionReason.ALREADY_VOTED
    assert [votes for _, votes in store.results()] == [1, 0, 0]


def test_window_is_checked_before_replay() -> None:
    store = _store()
    authorization = authorization_for_identity(5)
    store.cast(WINDOW, authorization, 0, now=DURING)

    assert store.cast(WINDOW, authorization, 0, now=CLOSES + timedelta(minutes=1)).reason is RejectionReason.CLOSED
    assert store.cast(WINDOW, authorization_for_identity(6), 0, now=OPENS - timedelta(minutes=1)).reason is (
        RejectionReason.NOT_OPEN
    )


def test_replay_is_checked_before_option_index() -> None:
    store = _store()
    authorization = authorization_for_identity(5)
    store.cast(WINDOW, authorization, 0, now=DURING)

    assert store.cast(WINDOW, authorization, 42, now=DURING).reason is RejectionReason.ALREADY_VOTED


@pytest.mark.parametrize("option_index", [-1, 3])
def test_invalid_option_leaves_state_untouched(option_index: int) -> None:
    store = _store()
    authorization = authorization_for_identity(9)

    outcome = store.cast(WINDOW, authorization, option_index, now=DURING)

    assert outcome.reason is RejectionReason.INVALID_OPTION
    assert not store.has_voted(authorization)
    assert store.cast(WINDOW, authorization, 0, now=DURING).accepted


def test_store_rebuilds_from_records() -> None:
    store = _store()
    store.cast(WINDOW, authorization_for_identity(1), 2, now=DURING)

    restored = BallotStore.from_records(store.option_records(), store.nullifiers)

    assert restored.has_voted(authorization_for_identity(1))
    assert [(option.text, votes) for option, votes in restored.results()] == [("Yes", 0), ("No", 0), ("Abstain", 1)]
