"""Memory Manager - facade over short-term history and long-term vector memory.

Consumers (the streaming orchestrator, routes) talk to this class only and
never see the two backing stores. One instance is built per process in the
application lifespan and passed by reference.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from ..config import AppConfig
from ..exceptions import ValidationError
from .backends import create_backend
from .embedding import EmbeddingService
from .history import HistoryStore
from .identity import IdentityKey
from .models import HistoryWindow, RecallResult
from .vector_store import VectorMemory


class MemoryManager:
    """Owns one handle to each memory tier.

    Provides:
    - Short-term transcript: read_window, append, seed, count, clear_history
    - Long-term recall: vector_store, vector_search

    Initialization is explicit and idempotent; every operation awaits it.
    """

    def __init__(self, history: HistoryStore, vector: VectorMemory):
        """
        Args:
            history: Short-term history store
            vector: Long-term vector memory
        """
        self._history = history
        self._vector = vector
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> "MemoryManager":
        """Build both tiers from configuration (not yet initialized)."""
        backend = create_backend(config.history, config.storage)
        history = HistoryStore(
            backend=backend,
            limit=config.history.limit,
            window_hours=config.history.window_hours,
        )
        vector = VectorMemory(
            embedder=EmbeddingService(config.embedding),
            db_path=config.storage.sqlite_db_path,
            top_k=config.vector.top_k,
        )
        return cls(history=history, vector=vector)

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def vector(self) -> VectorMemory:
        return self._vector

    async def initialize(self) -> None:
        """Open both stores once; later calls are no-ops."""
        async with self._init_lock:
            if self._initialized:
                return
            await self._history.backend.initialize()
            await self._vector.initialize()
            self._initialized = True
            logger.info("MemoryManager initialized")

    async def close(self) -> None:
        async with self._init_lock:
            if not self._initialized:
                return
            await self._history.backend.close()
            await self._vector.close()
            self._initialized = False
            logger.info("MemoryManager closed")

    async def read_window(self, key: IdentityKey) -> HistoryWindow:
        key.require_valid()
        await self.initialize()
        return await self._history.read_window(key)

    async def append(self, key: IdentityKey, text: str) -> None:
        key.require_valid()
        await self.initialize()
        await self._history.append(key, text)

    async def seed(
        self, key: IdentityKey, seed_text: str, delimiter: str = "\n"
    ) -> bool:
        key.require_valid()
        await self.initialize()
        return await self._history.seed(key, seed_text, delimiter)

    async def count(self, key: IdentityKey) -> int:
        key.require_valid()
        await self.initialize()
        return await self._history.count(key)

    async def clear_history(self, key: IdentityKey) -> int:
        key.require_valid()
        await self.initialize()
        return await self._history.clear(key)

    async def vector_store(self, text: str, persona_id: str) -> str:
        await self.initialize()
        return await self._vector.store(text, persona_id)

    async def vector_search(
        self, query: str, persona_id: str, k: int | None = None
    ) -> RecallResult:
        """Best-effort recall; a failure to even open the index is degraded too."""
        if not isinstance(persona_id, str) or not persona_id.strip():
            raise ValidationError("persona_id", "must be a non-empty string")
        try:
            await self.initialize()
        except Exception as e:
            logger.warning(f"Vector search skipped, memory unavailable: {e}")
            return RecallResult(texts=[], degraded=True, error=str(e))
        return await self._vector.search(query, persona_id, k)
