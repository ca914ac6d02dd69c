"""Long-term vector memory.

Similarity-searchable archive of utterances stored in SQLite, namespaced per
persona. Records hold float32 embedding BLOBs; search scores every record of the
requesting persona by cosine similarity and never looks outside that namespace.

Search is best-effort: any failure becomes an empty, ``degraded`` RecallResult.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Protocol

import aiosqlite
import numpy as np
from loguru import logger

from ..exceptions import DegradedRecall, ValidationError
from .embedding import EmbeddingService
from .models import RecallResult, VectorRecord

DEFAULT_TOP_K = 3


class Embedder(Protocol):
    """Anything that turns text into normalized vectors."""

    async def embed(self, texts: list[str]) -> list[list[float]]: ...

    async def embed_one(self, text: str) -> list[float]: ...


def _content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _require_persona(persona_id: str) -> None:
    if not isinstance(persona_id, str) or not persona_id.strip():
        raise ValidationError("persona_id", "must be a non-empty string")


class VectorMemory:
    """Persona-namespaced similarity index on SQLite."""

    def __init__(
        self,
        embedder: Embedder,
        db_path: str = "./data/companion_chat.db",
        top_k: int = DEFAULT_TOP_K,
    ):
        """Initialize vector memory.

        Args:
            embedder: Embedding service for records and queries
            db_path: Path to SQLite database file
            top_k: Default number of results per search
        """
        self._embedder = embedder
        self.db_path = db_path
        self.top_k = top_k
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
            CREATE TABLE IF NOT EXISTS vector_records (
                record_id TEXT PRIMARY KEY,
                persona_id TEXT NOT NULL,
                content TEXT NOT NULL,
                content_hash TEXT NOT NULL,
                embedding BLOB NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (persona_id, content_hash)
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_vector_persona "
            "ON vector_records(persona_id)"
        )
        await self._db.commit()
        logger.info(f"Vector memory ready at {self.db_path}")

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("Vector memory closed")

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("VectorMemory used before initialize()")
        return self._db

    async def store(self, text: str, persona_id: str) -> str:
        """Embed ``text`` and upsert it under ``persona_id``.

        Storing the same text twice for a persona refreshes the existing
        record instead of duplicating it.

        Returns:
            Record ID
        """
        _require_persona(persona_id)

        embedding = await self._embedder.embed_one(text)
        if not embedding:
            raise ValueError("Embedding service returned an empty vector")

        record = VectorRecord(text=text, embedding=embedding, persona_id=persona_id)
        blob = EmbeddingService.serialize_embedding(record.embedding)
        digest = _content_hash(record.text)

        db = self._conn()
        async with self._write_lock:
            await db.execute(
                """
                INSERT INTO vector_records
                    (record_id, persona_id, content, content_hash, embedding, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(persona_id, content_hash) DO UPDATE SET
                    embedding = excluded.embedding,
                    created_at = excluded.created_at
                """,
                (
                    record.id,
                    record.persona_id,
                    record.text,
                    digest,
                    blob,
                    record.created_at.isoformat(),
                ),
            )
            await db.commit()
            async with db.execute(
                "SELECT record_id FROM vector_records "
                "WHERE persona_id = ? AND content_hash = ?",
                (persona_id, digest),
            ) as cursor:
                row = await cursor.fetchone()

        stored_id = row[0] if row else record.id
        logger.debug(f"Vector record stored: {stored_id} (persona={persona_id})")
        return stored_id

    async def search(
        self, query: str, persona_id: str, k: int | None = None
    ) -> RecallResult:
        """Nearest records of ``persona_id`` to ``query``, nearest first.

        An empty ``persona_id`` is rejected with ValidationError before any
        storage access. Past that point this never raises: failures are logged
        and reported as a degraded, empty result.
        """
        _require_persona(persona_id)
        k = k or self.top_k
        if not query or not query.strip():
            return RecallResult()

        try:
            texts = await self._search(query, persona_id, k)
        except Exception as e:
            degraded = DegradedRecall(f"Vector search failed: {e}")
            logger.warning(f"{degraded} (persona={persona_id})")
            return RecallResult(texts=[], degraded=True, error=str(degraded))

        logger.debug(
            f"Vector search: persona={persona_id}, k={k}, found={len(texts)}"
        )
        return RecallResult(texts=texts)

    async def _search(self, query: str, persona_id: str, k: int) -> list[str]:
        query_embedding = await self._embedder.embed_one(query)
        if not query_embedding:
            return []

        db = self._conn()
        async with db.execute(
            "SELECT content, embedding FROM vector_records WHERE persona_id = ?",
            (persona_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        if not rows:
            return []

        matrix = np.asarray(
            [EmbeddingService.deserialize_embedding(row[1]) for row in rows],
            dtype=np.float32,
        )
        query_vec = np.asarray(query_embedding, dtype=np.float32)
        if matrix.shape[1] != query_vec.shape[0]:
            raise ValueError(
                f"Embedding dimension mismatch: index={matrix.shape[1]}, "
                f"query={query_vec.shape[0]}"
            )

        scores = matrix @ query_vec
        # stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [rows[i][0] for i in order]

    async def count(self, persona_id: str) -> int:
        db = self._conn()
        async with db.execute(
            "SELECT COUNT(*) FROM vector_records WHERE persona_id = ?",
            (persona_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
