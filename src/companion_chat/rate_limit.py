"""
Sliding window rate limiter.

Consulted once per chat request, before any mutation. The identifier is the
route plus the user id, so each user gets an independent window per endpoint.

Usage:
    limiter = SlidingWindowRateLimiter(max_requests=10, window_seconds=10)
    await limiter.check(f"{request.url.path}-{user_id}")  # raises RateLimited
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Callable, Protocol, runtime_checkable

from loguru import logger

from .config import RateLimitConfig
from .exceptions import RateLimited


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, identifier: str) -> None:
        """Raise RateLimited if ``identifier`` is over its limit."""
        ...


class SlidingWindowRateLimiter:
    """
    Sliding window log: a request is allowed if fewer than ``max_requests``
    were allowed for the same identifier within the last ``window_seconds``.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    @property
    def tracked_identifiers(self) -> int:
        return len(self._hits)

    def _prune(self, now: float) -> None:
        """Forget identifiers whose window has emptied."""
        expired = [
            key
            for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window_seconds
        ]
        for key in expired:
            del self._hits[key]

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "SlidingWindowRateLimiter":
        return cls(max_requests=config.requests, window_seconds=config.window_seconds)

    async def allow(self, identifier: str) -> bool:
        """Record a request and report whether it is within the limit."""
        async with self._lock:
            now = self._clock()
            self._prune(now)
            hits = self._hits.setdefault(identifier, deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    async def check(self, identifier: str) -> None:
        if await self.allow(identifier):
            return
        hits = self._hits.get(identifier)
        retry_after = max(0.0, self.window_seconds - (self._clock() - hits[0])) if hits else 0.0
        logger.info(f"Rate limit exceeded for {identifier}")
        raise RateLimited(identifier, retry_after=retry_after)


class NoopRateLimiter:
    """Allows everything; used when rate limiting is disabled."""

    async def check(self, identifier: str) -> None:
        return None
