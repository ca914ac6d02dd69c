"""Short-term history store.

Keeps a bounded, time-windowed transcript per IdentityKey on top of a
sorted-set backend. Entries are scored by their timestamp (epoch ms), so
seeded and live lines interleave by time rather than by insertion order.

Key features:
- Capacity bound: trimmed to ``limit`` entries after every insert
- Time window: reads only return entries from the trailing ``window_hours``
- Idempotent seeding of a persona's opening transcript
"""

from __future__ import annotations

import math
import time
from typing import Callable

from loguru import logger

from .backends.base import SortedSetBackend
from .identity import IdentityKey
from .models import HistoryEntry, HistoryWindow

HISTORY_LIMIT = 30
HISTORY_WINDOW_HOURS = 24.0


def _now_ms() -> float:
    return time.time() * 1000.0


class HistoryStore:
    """Append-only, trimmed transcript per identity key.

    Attributes:
        limit: Maximum entries kept per key
        window_ms: Width of the read window in milliseconds
    """

    def __init__(
        self,
        backend: SortedSetBackend,
        limit: int = HISTORY_LIMIT,
        window_hours: float = HISTORY_WINDOW_HOURS,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        """
        Args:
            backend: Sorted-set backend holding the entries
            limit: Maximum entries kept per key
            window_hours: Width of the read window
            clock: Returns the current time in epoch milliseconds
        """
        self.backend = backend
        self.limit = limit
        self.window_ms = window_hours * 60 * 60 * 1000
        self._clock = clock

    async def append(self, key: IdentityKey, text: str) -> None:
        """Insert ``text`` at the current time, then trim."""
        key.require_valid()
        storage_key = key.storage_key
        score = await self._next_score(storage_key)
        await self.backend.zadd(storage_key, text, score)
        await self._trim(storage_key)
        logger.debug(f"History append: key={storage_key}, chars={len(text)}")

    async def read_window(self, key: IdentityKey) -> HistoryWindow:
        """Most recent ``limit`` entries within the time window, oldest first.

        The window has no upper bound: seed lines may be stamped a few
        milliseconds ahead of the clock.
        """
        key.require_valid()
        now = self._clock()
        rows = await self.backend.zrange_by_score(
            key.storage_key, now - self.window_ms, math.inf
        )
        entries = [
            HistoryEntry(text=member, timestamp=score)
            for member, score in rows[-self.limit:]
        ]
        logger.debug(
            f"History read: key={key.storage_key}, "
            f"in_window={len(rows)}, returned={len(entries)}"
        )
        return HistoryWindow(entries=entries)

    async def seed(
        self, key: IdentityKey, seed_text: str, delimiter: str = "\n"
    ) -> bool:
        """Bootstrap a key's transcript from ``seed_text``.

        Lines get strictly increasing timestamps (``now + i``) so their order
        survives the single-batch insert. Does nothing if the key already has
        any entry.

        Returns:
            True if lines were inserted
        """
        key.require_valid()
        storage_key = key.storage_key

        if await self.backend.zcard(storage_key) > 0:
            logger.debug(f"Seed skipped, history exists: key={storage_key}")
            return False

        lines = [line.strip() for line in seed_text.split(delimiter)]
        lines = [line for line in lines if line]
        if not lines:
            return False

        now = self._clock()
        await self.backend.zadd_many(
            storage_key, [(line, now + i) for i, line in enumerate(lines)]
        )
        await self._trim(storage_key)
        logger.info(f"Seeded {len(lines)} history lines for {storage_key}")
        return True

    async def count(self, key: IdentityKey) -> int:
        key.require_valid()
        return await self.backend.zcard(key.storage_key)

    async def trim(self, key: IdentityKey) -> int:
        key.require_valid()
        return await self._trim(key.storage_key)

    async def clear(self, key: IdentityKey) -> int:
        """Remove every entry of ``key``."""
        key.require_valid()
        removed = await self.backend.delete(key.storage_key)
        logger.info(f"Cleared {removed} history entries for {key.storage_key}")
        return removed

    async def _trim(self, storage_key: str) -> int:
        """Evict the lowest-timestamp entries beyond ``limit``."""
        count = await self.backend.zcard(storage_key)
        if count <= self.limit:
            return 0
        removed = await self.backend.zremrangebyrank(
            storage_key, 0, count - self.limit - 1
        )
        logger.debug(f"Trimmed {removed} history entries from {storage_key}")
        return removed

    async def _next_score(self, storage_key: str) -> float:
        """Current time, moved past any entry stamped at or after it."""
        now = self._clock()
        later = await self.backend.zrange_by_score(storage_key, now, math.inf)
        if later:
            return max(now, later[-1][1] + 1)
        return now
