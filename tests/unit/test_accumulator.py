from __future__ import annotations

import hashlib

import pytest

from anonvote.services.accumulator import (
    Accumulator,
    CapacityExceededError,
    CapacityInvalidError,
    CapacityPolicy,
    DuplicateCommitmentError,
    compute_root,
    tree_depth,
)


def _sha(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def test_single_leaf_root_matches_hand_computed_tree() -> None:
    empty = _sha(b"\x00")
    leaf = _sha(b"\x00" + b"commit-a")
    expected = "0x" + _sha(b"\x01" + leaf + empty).hex()

    accumulator = Accumulator(capacity=2)
    assert accumulator.insert(1, "commit-a") == expected


def test_empty_root_depends_on_capacity() -> None:
    small = Accumulator.initialize(4)
    large = Accumulator.initialize(64)

    assert small.startswith("0x") and len(small) == 66
    assert small != large
    assert Accumulator.initialize(4) == small


@pytest.mark.parametrize("capacity", [0, -3])
def test_non_positive_capacity_is_rejected(capacity: int) -> None:
    with pytest.raises(CapacityInvalidError):
        Accumulator.initialize(capacity)


def test_tree_depth_grows_with_overflowing_leaf_count() -> None:
    assert tree_depth(1) == 1
    assert tree_depth(4) == 2
    assert tree_depth(20) == 5
    assert tree_depth(2, leaf_count=3) == 2


def test_insert_is_idempotent_per_identity() -> None:
    accumulator = Accumulator(capacity=4)
    first = accumulator.insert(7, "commit-7")
    again = accumulator.insert(7, "another-commitment")

    assert first == again
    assert accumulator.members() == [7]
    assert accumulator.to_records() == [{"identity_id": 7, "commitment": "commit-7"}]


def test_duplicate_commitment_for_other_identity_is_rejected() -> None:
    accumulator = Accumulator(capacity=4)
    root = accumulator.insert(1, "shared")

    with pytest.raises(DuplicateCommitmentError):
        accumulator.insert(2, "shared")
    assert accumulator.root == root
    assert 2 not in accumulator


def test_remove_restores_previous_root() -> None:
    accumulator = Accumulator(capacity=4)
    accumulator.insert(1, "commit-1")
    before = accumulator.root

    accumulator.insert(2, "commit-2")
    assert accumulator.root != before

    assert accumulator.remove(2) == before
    assert accumulator.members() == [1]


def test_root_depends_only_on_surviving_ordered_leaves() -> None:
    churned = Accumulator(capacity=8)
    for identity_id, commitment in ((1, "a"), (2, "b"), (3, "c")):
        churned.insert(identity_id, commitment)
    churned.remove(2)

    fresh = Accumulator(capacity=8)
    fresh.insert(1, "a")
    fresh.insert(3, "c")

    assert churned.root == fresh.root == compute_root(["a", "c"], 8)


def test_leaf_order_changes_the_root() -> None:
    assert compute_root(["a", "b"], 4) != compute_root(["b", "a"], 4)


def test_removing_unknown_identity_is_a_no_op() -> None:
    accumulator = Accumulator(capacity=4)
    root = accumulator.insert(1, "commit-1")

    assert accumulator.remove(99) == root
    assert len(accumulator) == 1


def test_strict_policy_rejects_inserts_beyond_capacity() -> None:
    accumulator = Accumulator(capacity=2, policy=CapacityPolicy.STRICT)
    accumulator.insert(1, "a")
    accumulator.insert(2, "b")

    with pytest.raises(CapacityExceededError):
        accumulator.insert(3, "c")
    assert accumulator.members() == [1, 2]


def test_advisory_policy_grows_the_tree() -> None:
    accumulator = Accumulator(capacity=2)
    for identity_id in range(1, 6):
        accumulator.insert(identity_id, f"commit-{identity_id}")

    assert len(accumulator) == 5
    assert accumulator.root == compute_root([f"commit-{index}" for index in range(1, 6)], 2)


def test_records_round_trip_preserves_root() -> None:
    accumulator = Accumulator(capacity=4)
    accumulator.insert(1, "a")
    accumulator.insert(2, "b")

    restored = Accumulator.from_records(4, accumulator.to_records())
    assert restored.root == accumulator.root
    assert restored.members() == [1, 2]
