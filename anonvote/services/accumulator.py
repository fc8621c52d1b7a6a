"""Membership accumulator: ordered commitment leaves summarized by a hash-tree root.

The root is a pure function of the ordered commitment list and the declared
capacity. Leaves live in a flat list; every mutation rebuilds the root from the
surviving leaves, so tree positions are not stable across removals.
"""
from __future__ import annotations

import enum
import hashlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache

_LEAF_PREFIX = b"\x00"
_NODE_PREFIX = b"\x01"
_EMPTY_LEAF = hashlib.sha256(_LEAF_PREFIX).digest()


class AccumulatorError(RuntimeError):
    """Base exception for accumulator errors."""


class CapacityInvalidError(AccumulatorError):
    """Raised when an accumulator is sized with a non-positive capacity."""


class CapacityExceededError(AccumulatorError):
    """Raised under the strict policy when an insert would exceed the declared capacity."""


class DuplicateCommitmentError(AccumulatorError):
    """Raised when a commitment is already registered for a different identity."""


class CapacityPolicy(str, enum.Enum):
    ADVISORY = "advisory"
    STRICT = "strict"


@dataclass(slots=True, frozen=True)
class Leaf:
    identity_id: int
    commitment: str

    def to_dict(self) -> dict[str, int | str]:
        return {"identity_id": self.identity_id, "commitment": self.commitment}


def _hash_leaf(commitment: str) -> bytes:
    return hashlib.sha256(_LEAF_PREFIX + commitment.encode("utf-8")).digest()


def _hash_node(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(_NODE_PREFIX + left + right).digest()


@lru_cache(maxsize=64)
def _zero_hashes(depth: int) -> tuple[bytes, ...]:
    zeros = [_EMPTY_LEAF]
    for _ in range(depth):
        zeros.append(_hash_node(zeros[-1], zeros[-1]))
    return tuple(zeros)


def tree_depth(capacity: int, leaf_count: int = 0) -> int:
    """Depth of the smallest tree holding ``capacity`` leaves, grown if ``leaf_count`` overflows it."""

    if capacity <= 0:
        raise CapacityInvalidError(f"Accumulator capacity must be positive, got {capacity}")
    slots = max(capacity, leaf_count, 2)
    return (slots - 1).bit_length()


def compute_root(commitments: Sequence[str], capacity: int) -> str:
    """Return the ``0x``-prefixed root for the ordered ``commitments``."""

    depth = tree_depth(capacity, len(commitments))
    zeros = _zero_hashes(depth)
    level = [_hash_leaf(commitment) for commitment in commitments]
    for height in range(depth):
        if len(level) % 2:
            level.append(zeros[height])
        level = [_hash_node(level[i], level[i + 1]) for i in range(0, len(level), 2)]
    root = level[0] if level else zeros[depth]
    return "0x" + root.hex()


class Accumulator:
    """Ordered (identity, commitment) leaves of one event plus the derived root."""

    def __init__(
        self,
        capacity: int,
        leaves: Iterable[Leaf] = (),
        *,
        policy: CapacityPolicy = CapacityPolicy.ADVISORY,
    ) -> None:
        tree_depth(capacity)
        self._capacity = capacity
        self._policy = CapacityPolicy(policy)
        self._leaves: list[Leaf] = list(leaves)
        self._root = compute_root(self._commitments(), capacity)

    @classmethod
    def initialize(cls, capacity: int) -> str:
        """Root of an empty set sized for ``capacity`` members."""
        return compute_root((), capacity)

    @classmethod
    def from_records(
        cls,
        capacity: int,
        records: Iterable[dict],
        *,
        policy: CapacityPolicy = CapacityPolicy.ADVISORY,
    ) -> "Accumulator":
        leaves = (Leaf(identity_id=int(item["identity_id"]), commitment=str(item["commitment"])) for item in records)
        return cls(capacity, leaves, policy=policy)

    @property
    def root(self) -> str:
        return self._root

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def leaves(self) -> tuple[Leaf, ...]:
        return tuple(self._leaves)

    def __len__(self) -> int:
        return len(self._leaves)

    def __contains__(self, identity_id: object) -> bool:
        return any(leaf.identity_id == identity_id for leaf in self._leaves)

    def members(self) -> list[int]:
        return [leaf.identity_id for leaf in self._leaves]

    def insert(self, identity_id: int, commitment: str) -> str:
        if identity_id in self:
            return self._root

        for leaf in self._leaves:
            if leaf.commitment == commitment:
                raise DuplicateCommitmentError(
                    f"Commitment is already registered for identity {leaf.identity_id}"
                )

        if self._policy is CapacityPolicy.STRICT and len(self._leaves) >= self._capacity:
            raise CapacityExceededError(
                f"Accumulator capacity of {self._capacity} members is exhausted"
            )

        self._leaves.append(Leaf(identity_id=identity_id, commitment=commitment))
        self._root = compute_root(self._commitments(), self._capacity)
        return self._root

    def remove(self, identity_id: int) -> str:
        survivors = [leaf for leaf in self._leaves if leaf.identity_id != identity_id]
        if len(survivors) == len(self._leaves):
            return self._root
        self._leaves = survivors
        self._root = compute_root(self._commitments(), self._capacity)
        return self._root

    def to_records(self) -> list[dict[str, int | str]]:
        return [leaf.to_dict() for leaf in self._leaves]

    def _commitments(self) -> list[str]:
        return [leaf.commitment for leaf in self._leaves]


__all__ = [
    "Accumulator",
    "AccumulatorError",
    "CapacityExceededError",
    "CapacityInvalidError",
    "CapacityPolicy",
    "DuplicateCommitmentError",
    "Leaf",
    "compute_root",
    "tree_depth",
]
