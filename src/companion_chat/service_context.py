"""
Service Context - owns every long-lived service of the process.

Built once from configuration in the application lifespan and handed to the
routes by reference.
"""

from __future__ import annotations

from loguru import logger

from .config import AppConfig
from .llm.streaming_model import GenerationParams, OpenAICompatibleModel, StreamingModel
from .memory.manager import MemoryManager
from .rate_limit import NoopRateLimiter, RateLimiter, SlidingWindowRateLimiter
from .storage.models import Persona
from .storage.sqlite_store import SQLiteChatStore
from .streaming.orchestrator import ChatOrchestrator


class ServiceContext:
    """
    Facade composing the chat services:
    - store: personas and messages
    - memory: short-term history + long-term vector memory
    - model: streaming text generation
    - orchestrator: per-request streaming sessions
    - rate_limiter: per-user request limiting
    """

    def __init__(
        self,
        config: AppConfig,
        store: SQLiteChatStore,
        memory: MemoryManager,
        model: StreamingModel,
        rate_limiter: RateLimiter,
    ):
        self.config = config
        self.store = store
        self.memory = memory
        self.model = model
        self.rate_limiter = rate_limiter
        self.orchestrator = ChatOrchestrator(
            memory=memory,
            messages=store,
            personas=store,
            model=model,
            params=GenerationParams.from_config(config.llm),
            checkpoint_interval=config.streaming.checkpoint_interval_seconds,
            cleanup_timeout=config.streaming.cleanup_timeout_seconds,
            seed_delimiter=config.history.seed_delimiter,
            stop_markers=config.llm.stop_markers,
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> "ServiceContext":
        rate_limiter: RateLimiter = (
            SlidingWindowRateLimiter.from_config(config.rate_limit)
            if config.rate_limit.enabled
            else NoopRateLimiter()
        )
        return cls(
            config=config,
            store=SQLiteChatStore(db_path=config.storage.sqlite_db_path),
            memory=MemoryManager.from_config(config),
            model=OpenAICompatibleModel.from_config(config.llm),
            rate_limiter=rate_limiter,
        )

    async def initialize(self) -> None:
        """Open stores and upsert configured personas."""
        await self.store.initialize()
        await self.memory.initialize()
        for persona_cfg in self.config.personas:
            await self.store.upsert_persona(Persona(**persona_cfg.model_dump()))
        logger.info(
            f"ServiceContext ready: {len(self.config.personas)} personas, "
            f"model={self.model.model_id}"
        )

    async def close(self) -> None:
        await self.orchestrator.shutdown()
        await self.memory.close()
        await self.store.close()
        close_model = getattr(self.model, "close", None)
        if close_model is not None:
            await close_model()
        logger.info("ServiceContext closed")
