"""SQLite sorted-set backend for short-term history.

Emulates the Redis sorted-set commands the history store needs on top of a
single ``history_entries`` table, using aiosqlite for async access.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
from loguru import logger


class SQLiteSortedSetBackend:
    """Sorted sets stored as (key, member, score) rows.

    A member is unique within its key, as in a Redis sorted set: adding an
    existing member updates its score.
    """

    def __init__(self, db_path: str = "./data/companion_chat.db"):
        """Initialize the backend.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the connection and create the table if needed."""
        if self._db is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS history_entries (
                key TEXT NOT NULL,
                member TEXT NOT NULL,
                score REAL NOT NULL,
                PRIMARY KEY (key, member)
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_history_key_score "
            "ON history_entries(key, score)"
        )
        await self._db.commit()
        logger.info(f"SQLite history backend ready at {self.db_path}")

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("SQLite history backend closed")

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteSortedSetBackend used before initialize()")
        return self._db

    async def zadd(self, key: str, member: str, score: float) -> None:
        await self.zadd_many(key, [(member, score)])

    async def zadd_many(self, key: str, items: list[tuple[str, float]]) -> None:
        if not items:
            return
        db = self._conn()
        async with self._write_lock:
            await db.executemany(
                """
                INSERT INTO history_entries (key, member, score)
                VALUES (?, ?, ?)
                ON CONFLICT(key, member) DO UPDATE SET score = excluded.score
                """,
                [(key, member, score) for member, score in items],
            )
            await db.commit()

    async def zrange_by_score(
        self, key: str, min_score: float, max_score: float
    ) -> list[tuple[str, float]]:
        db = self._conn()
        async with db.execute(
            """
            SELECT member, score FROM history_entries
            WHERE key = ? AND score >= ? AND score <= ?
            ORDER BY score ASC, member ASC
            """,
            (key, min_score, max_score),
        ) as cursor:
            rows = await cursor.fetchall()
        return [(row[0], row[1]) for row in rows]

    async def zcard(self, key: str) -> int:
        db = self._conn()
        async with db.execute(
            "SELECT COUNT(*) FROM history_entries WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        db = self._conn()
        async with self._write_lock:
            count = await self.zcard(key)
            if start < 0:
                start += count
            if stop < 0:
                stop += count
            start = max(start, 0)
            stop = min(stop, count - 1)
            if count == 0 or start > stop:
                return 0

            cursor = await db.execute(
                """
                DELETE FROM history_entries WHERE rowid IN (
                    SELECT rowid FROM history_entries
                    WHERE key = ?
                    ORDER BY score ASC, member ASC
                    LIMIT ? OFFSET ?
                )
                """,
                (key, stop - start + 1, start),
            )
            await db.commit()
            return cursor.rowcount

    async def delete(self, key: str) -> int:
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "DELETE FROM history_entries WHERE key = ?", (key,)
            )
            await db.commit()
            return cursor.rowcount
