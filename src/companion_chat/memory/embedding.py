"""Embedding service for long-term memory.

Provides vector embeddings through either a local sentence-transformers model
(lazy-loaded on first use, encoded in a worker thread) or an
OpenAI-compatible embeddings endpoint.
"""

from __future__ import annotations

import asyncio
import struct
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger
from openai import AsyncOpenAI

from ..config import EmbeddingConfig

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer


class EmbeddingService:
    """Embedding service with ``local`` and ``api`` providers.

    Features:
    - Lazy model / client creation
    - Normalized vectors, so cosine similarity is a dot product
    - Serialization helpers for SQLite BLOB storage
    """

    def __init__(self, config: EmbeddingConfig | None = None):
        """Initialize embedding service.

        Args:
            config: Embedding configuration
        """
        self._config = config or EmbeddingConfig()
        self._model: SentenceTransformer | None = None
        self._client: AsyncOpenAI | None = None
        self._dimension = self._config.dimension
        self._load_lock = asyncio.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    async def _ensure_model(self) -> SentenceTransformer:
        """Lazy-load the sentence-transformers model."""
        async with self._load_lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                logger.info(f"Loading embedding model: {self._config.model}")
                self._model = await asyncio.to_thread(
                    SentenceTransformer,
                    self._config.model,
                    trust_remote_code=self._config.trust_remote_code,
                )
                self._dimension = self._model.get_sentence_embedding_dimension()
                logger.info(f"Embedding model loaded: dim={self._dimension}")
        return self._model

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=self._config.base_url,
                api_key=self._config.api_key or "not-needed",
            )
            logger.debug(
                f"Embedding API client created (base_url: {self._config.base_url})"
            )
        return self._client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Encode texts into normalized embedding vectors.

        Args:
            texts: List of text strings to encode

        Returns:
            List of embedding vectors (each a list of floats)
        """
        if not texts:
            return []

        if self._config.provider == "api":
            client = self._ensure_client()
            response = await client.embeddings.create(
                model=self._config.model, input=texts
            )
            vectors = np.asarray(
                [item.embedding for item in response.data], dtype=np.float32
            )
            norms = np.linalg.norm(vectors, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            return (vectors / norms).tolist()

        model = await self._ensure_model()
        embeddings: np.ndarray = await asyncio.to_thread(
            model.encode,
            texts,
            batch_size=32,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return embeddings.tolist()

    async def embed_one(self, text: str) -> list[float]:
        """Encode a single text into an embedding vector."""
        results = await self.embed([text])
        return results[0] if results else []

    @staticmethod
    def serialize_embedding(embedding: list[float]) -> bytes:
        """Pack an embedding as little-endian float32 bytes."""
        return struct.pack(f"<{len(embedding)}f", *embedding)

    @staticmethod
    def deserialize_embedding(blob: bytes) -> list[float]:
        """Unpack little-endian float32 bytes."""
        count = len(blob) // 4  # float32 = 4 bytes
        return list(struct.unpack(f"<{count}f", blob))
