"""
Sorted-set backend interface.

The queue store only needs a handful of sorted-set operations. Each
storage adapter implements exactly this surface so the queue logic never
depends on backend-specific argument shapes.
"""

from typing import Protocol, Sequence, Union

Score = Union[int, float]


class StorageError(Exception):
    """The storage backend was unreachable or rejected a command."""


def format_score(score: Score) -> str:
    """Render a score the way Redis expects it on the wire."""
    if score == float("inf"):
        return "+inf"
    if score == float("-inf"):
        return "-inf"
    if isinstance(score, float) and score.is_integer():
        return str(int(score))
    return str(score)


class SortedSetBackend(Protocol):
    """Minimal sorted-set operations used by the queue store."""

    async def add(self, key: str, members: dict[str, Score]) -> int:
        """Insert members with their scores. Returns the number added."""
        ...

    async def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        """Members between two ranks (inclusive), lowest score first."""
        ...

    async def remove_members(self, key: str, members: Sequence[str]) -> list[str]:
        """Remove the given members. Returns those this call actually removed."""
        ...

    async def remove_by_score(self, key: str, min_score: Score, max_score: Score) -> int:
        """Remove members with min_score <= score <= max_score."""
        ...

    async def cardinality(self, key: str) -> int:
        """Number of members in the set (0 when the key is missing)."""
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        """Set the key's time-to-live."""
        ...

    async def ping(self) -> bool:
        """Connectivity check; never raises."""
        ...

    async def close(self) -> None:
        """Release any open connections."""
        ...
