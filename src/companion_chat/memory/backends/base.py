"""
Sorted-set backend interface.

The short-term history store is built on these primitives only, so any store
offering scored members (Redis, SQLite) can back it.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SortedSetBackend(Protocol):
    """Minimal sorted-set primitives keyed by an opaque string."""

    async def initialize(self) -> None:
        """Open connections / create schema. Must be idempotent."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...

    async def zadd(self, key: str, member: str, score: float) -> None:
        """
        Add a member with a score; re-adding a member updates its score.

        Args:
            key: Set key
            member: Member text
            score: Ordering score
        """
        ...

    async def zadd_many(self, key: str, items: list[tuple[str, float]]) -> None:
        """
        Add several (member, score) pairs as one batch.

        Args:
            key: Set key
            items: Members with their scores
        """
        ...

    async def zrange_by_score(
        self, key: str, min_score: float, max_score: float
    ) -> list[tuple[str, float]]:
        """
        Members with min_score <= score <= max_score, ascending by score.

        Returns:
            (member, score) pairs
        """
        ...

    async def zcard(self, key: str) -> int:
        """Number of members in the set."""
        ...

    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        """
        Remove members by ascending rank, both bounds inclusive.

        Returns:
            Number of removed members
        """
        ...

    async def delete(self, key: str) -> int:
        """Remove the whole set. Returns the number of removed members."""
        ...
