"""Redis sorted-set backend for short-term history."""

from __future__ import annotations

import redis.asyncio as redis
from loguru import logger


class RedisSortedSetBackend:
    """
    Async Redis backend mapping each primitive to its native command.

    Usage:
        backend = RedisSortedSetBackend("redis://localhost:6379/0")
        await backend.initialize()
        await backend.zadd("chat:p:m:u", "User: hi", 1700000000000)
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0"):
        """
        Args:
            redis_url: Redis connection URL
        """
        self.redis_url = redis_url
        self._redis: redis.Redis | None = None

    async def initialize(self) -> None:
        """Connect and ping. Connection errors propagate."""
        if self._redis is not None:
            return
        self._redis = redis.from_url(
            self.redis_url, encoding="utf-8", decode_responses=True
        )
        await self._redis.ping()
        logger.info(f"Connected to Redis at {self.redis_url}")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Closed Redis connection")

    def _client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("RedisSortedSetBackend used before initialize()")
        return self._redis

    async def zadd(self, key: str, member: str, score: float) -> None:
        await self._client().zadd(key, {member: score})

    async def zadd_many(self, key: str, items: list[tuple[str, float]]) -> None:
        if not items:
            return
        async with self._client().pipeline(transaction=True) as pipe:
            for member, score in items:
                pipe.zadd(key, {member: score})
            await pipe.execute()

    async def zrange_by_score(
        self, key: str, min_score: float, max_score: float
    ) -> list[tuple[str, float]]:
        rows = await self._client().zrangebyscore(
            key, min_score, max_score, withscores=True
        )
        return [(member, float(score)) for member, score in rows]

    async def zcard(self, key: str) -> int:
        return int(await self._client().zcard(key))

    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        return int(await self._client().zremrangebyrank(key, start, stop))

    async def delete(self, key: str) -> int:
        count = await self.zcard(key)
        await self._client().delete(key)
        return count
