"""SQLite storage backend for personas and chat messages.

Provides the message persistence contract the streaming orchestrator relies on
(create / update / delete by opaque id) plus the read paths the routes need,
using aiosqlite for async operations.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import uuid4

import aiosqlite
from loguru import logger

from ..exceptions import NotFound
from .models import ChatMessage, MessageRole, Persona


@runtime_checkable
class MessageStore(Protocol):
    """Message persistence used by the streaming orchestrator."""

    async def create(
        self, content: str, role: MessageRole, user_id: str, persona_id: str
    ) -> str:
        """Insert a message and return its id."""
        ...

    async def update(self, message_id: str, content: str) -> None:
        """Replace a message's content."""
        ...

    async def delete(self, message_id: str) -> None:
        """Remove a message."""
        ...


@runtime_checkable
class PersonaStore(Protocol):
    """Read access to personas."""

    async def get_persona(self, persona_id: str) -> Persona | None:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteChatStore:
    """SQLite storage for personas and their chat messages.

    Uses WAL mode for concurrent reads; writes go through one connection
    guarded by an asyncio lock.
    """

    def __init__(self, db_path: str = "./data/companion_chat.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        logger.info(f"SQLiteChatStore initialized with db_path: {db_path}")

    async def initialize(self) -> None:
        """Create database tables and indexes if they don't exist."""
        if self._db is not None:
            return

        if self.db_path != ":memory:":
            db_dir = Path(self.db_path).parent
            db_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured database directory exists: {db_dir}")

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        await self._create_tables()
        await self._db.commit()
        logger.info("SQLite chat database initialized successfully")

    async def _create_tables(self) -> None:
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS personas (
                persona_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                instructions TEXT NOT NULL DEFAULT '',
                seed TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # No FK to personas: messages are keyed by opaque ids and personas
        # may be managed elsewhere.
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                message_id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                role TEXT NOT NULL,
                user_id TEXT NOT NULL,
                persona_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_message_persona_user
            ON messages(persona_id, user_id, created_at)
        """)

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("SQLite chat database connection closed")

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._db

    # ------------------------------------------------------------------
    # Personas
    # ------------------------------------------------------------------

    async def get_persona(self, persona_id: str) -> Persona | None:
        db = self._conn()
        async with db.execute(
            """
            SELECT persona_id, name, instructions, seed, description
            FROM personas WHERE persona_id = ?
            """,
            (persona_id,),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        return Persona(
            id=row[0], name=row[1], instructions=row[2], seed=row[3], description=row[4]
        )

    async def require_persona(self, persona_id: str) -> Persona:
        persona = await self.get_persona(persona_id)
        if persona is None:
            raise NotFound("companion", persona_id)
        return persona

    async def upsert_persona(self, persona: Persona) -> str:
        """Insert or update a persona.

        Returns:
            Persona ID
        """
        db = self._conn()
        async with self._write_lock:
            await db.execute(
                """
                INSERT INTO personas (persona_id, name, instructions, seed, description, updated_at)
                VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(persona_id) DO UPDATE SET
                    name = excluded.name,
                    instructions = excluded.instructions,
                    seed = excluded.seed,
                    description = excluded.description,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    persona.id,
                    persona.name,
                    persona.instructions,
                    persona.seed,
                    persona.description,
                ),
            )
            await db.commit()
        logger.debug(f"Upserted persona: {persona.id}")
        return persona.id

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create(
        self, content: str, role: MessageRole, user_id: str, persona_id: str
    ) -> str:
        db = self._conn()
        message_id = str(uuid4())
        now = _now_iso()
        async with self._write_lock:
            await db.execute(
                """
                INSERT INTO messages
                    (message_id, content, role, user_id, persona_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (message_id, content, MessageRole(role).value, user_id, persona_id, now, now),
            )
            await db.commit()
        logger.debug(f"Message created: {message_id} (role={MessageRole(role).value})")
        return message_id

    async def update(self, message_id: str, content: str) -> None:
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "UPDATE messages SET content = ?, updated_at = ? WHERE message_id = ?",
                (content, _now_iso(), message_id),
            )
            await db.commit()
        if cursor.rowcount == 0:
            raise NotFound("message", message_id)

    async def delete(self, message_id: str) -> None:
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "DELETE FROM messages WHERE message_id = ?", (message_id,)
            )
            await db.commit()
        logger.debug(f"Message deleted: {message_id} (found={cursor.rowcount > 0})")

    async def get_message(self, message_id: str) -> ChatMessage | None:
        db = self._conn()
        async with db.execute(
            """
            SELECT message_id, content, role, user_id, persona_id, created_at, updated_at
            FROM messages WHERE message_id = ?
            """,
            (message_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_message(row) if row else None

    async def list_messages(self, persona_id: str, user_id: str) -> list[ChatMessage]:
        """A user's messages with a persona, oldest first."""
        db = self._conn()
        async with db.execute(
            """
            SELECT message_id, content, role, user_id, persona_id, created_at, updated_at
            FROM messages
            WHERE persona_id = ? AND user_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (persona_id, user_id),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def count_messages(self, persona_id: str) -> int:
        """Total messages for a persona across all users."""
        db = self._conn()
        async with db.execute(
            "SELECT COUNT(*) FROM messages WHERE persona_id = ?", (persona_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _row_to_message(row) -> ChatMessage:
        return ChatMessage(
            id=row[0],
            content=row[1],
            role=MessageRole(row[2]),
            user_id=row[3],
            persona_id=row[4],
            created_at=datetime.fromisoformat(row[5]),
            updated_at=datetime.fromisoformat(row[6]),
        )
