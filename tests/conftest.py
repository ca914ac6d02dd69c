"""
Companion chat test fixtures.

Stub collaborators (embedder, streaming model, message store, clock) plus
initialized SQLite-backed stores on a temporary directory.
"""

from __future__ import annotations

import asyncio
import os
from typing import AsyncIterator, Callable

import numpy as np
import pytest

from companion_chat.exceptions import NotFound
from companion_chat.llm.streaming_model import GenerationParams
from companion_chat.memory.backends.sqlite_backend import SQLiteSortedSetBackend
from companion_chat.memory.history import HistoryStore
from companion_chat.memory.identity import IdentityKey
from companion_chat.memory.manager import MemoryManager
from companion_chat.memory.vector_store import VectorMemory
from companion_chat.storage.models import ChatMessage, MessageRole, Persona
from companion_chat.storage.sqlite_store import SQLiteChatStore

KEYWORDS = ["star", "moon", "coffee", "cat", "rain", "music", "book", "hi"]


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, delta: float) -> None:
        self.now += delta


class KeywordEmbedder:
    """Deterministic embedder: normalized keyword counts plus a bias term."""

    def __init__(self):
        self.fail = False
        self.calls = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_one(t) for t in texts]

    async def embed_one(self, text: str) -> list[float]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("embedding backend unavailable")
        lowered = text.lower()
        vec = np.asarray(
            [lowered.count(word) for word in KEYWORDS] + [0.1], dtype=np.float32
        )
        return (vec / np.linalg.norm(vec)).tolist()


class ScriptedModel:
    """Streaming model replaying a fixed token script.

    Args:
        tokens: Tokens to emit in order
        fail_after: Raise after emitting this many tokens
        open_error: Raise from ``open_stream`` itself
        pause_after: Wait for ``resume`` after emitting this many tokens
        on_token: Called with the token index before each token is emitted
    """

    model_id = "test-model"

    def __init__(
        self,
        tokens: list[str] | None = None,
        fail_after: int | None = None,
        open_error: Exception | None = None,
        pause_after: int | None = None,
        on_token: Callable[[int], None] | None = None,
    ):
        self.tokens = tokens if tokens is not None else ["Hello", " world"]
        self.fail_after = fail_after
        self.open_error = open_error
        self.pause_after = pause_after
        self.on_token = on_token
        self.resume = asyncio.Event()
        self.prompts: list[str] = []
        self.params: list[GenerationParams] = []

    async def open_stream(
        self, prompt: str, params: GenerationParams
    ) -> AsyncIterator[str]:
        if self.open_error is not None:
            raise self.open_error
        self.prompts.append(prompt)
        self.params.append(params)
        return self._generate()

    async def _generate(self) -> AsyncIterator[str]:
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("model crashed")
            if self.pause_after is not None and i == self.pause_after:
                await self.resume.wait()
            if self.on_token is not None:
                self.on_token(i)
            await asyncio.sleep(0)
            yield token
        if self.fail_after is not None and self.fail_after >= len(self.tokens):
            raise RuntimeError("model crashed")


class RecordingMessageStore:
    """In-memory message and persona store recording every write."""

    def __init__(self, personas: list[Persona] | None = None, update_delay: float = 0.0):
        self.personas = {p.id: p for p in personas or []}
        self.messages: dict[str, ChatMessage] = {}
        self.updates: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.update_delay = update_delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 0

    async def get_persona(self, persona_id: str) -> Persona | None:
        return self.personas.get(persona_id)

    async def create(
        self, content: str, role: MessageRole, user_id: str, persona_id: str
    ) -> str:
        self._next_id += 1
        message_id = f"msg-{self._next_id}"
        self.messages[message_id] = ChatMessage(
            id=message_id,
            content=content,
            role=role,
            user_id=user_id,
            persona_id=persona_id,
        )
        return message_id

    async def update(self, message_id: str, content: str) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.update_delay:
                await asyncio.sleep(self.update_delay)
            if message_id not in self.messages:
                raise NotFound("message", message_id)
            self.messages[message_id].content = content
            self.updates.append((message_id, content))
        finally:
            self.in_flight -= 1

    async def delete(self, message_id: str) -> None:
        self.deleted.append(message_id)
        self.messages.pop(message_id, None)

    def by_role(self, role: MessageRole) -> list[ChatMessage]:
        return [m for m in self.messages.values() if m.role == role]


@pytest.fixture
def db_path(tmp_path) -> str:
    return os.path.join(tmp_path, "test.db")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ms_clock() -> FakeClock:
    return FakeClock(start=1_700_000_000_000.0)


@pytest.fixture
def key() -> IdentityKey:
    return IdentityKey(persona_id="aria", model_id="test-model", user_id="user-1")


@pytest.fixture
def persona() -> Persona:
    return Persona(
        id="aria",
        name="Aria",
        instructions="Aria is warm and curious.",
        seed="",
        description="A cheerful stargazer.",
    )


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
async def sqlite_backend(db_path):
    backend = SQLiteSortedSetBackend(db_path=db_path)
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
async def history(sqlite_backend, ms_clock) -> HistoryStore:
    return HistoryStore(backend=sqlite_backend, clock=ms_clock)


@pytest.fixture
async def vector(embedder, db_path):
    memory = VectorMemory(embedder=embedder, db_path=db_path)
    await memory.initialize()
    yield memory
    await memory.close()


@pytest.fixture
async def memory(embedder, db_path):
    manager = MemoryManager(
        history=HistoryStore(backend=SQLiteSortedSetBackend(db_path=db_path)),
        vector=VectorMemory(embedder=embedder, db_path=db_path),
    )
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
async def chat_store(db_path):
    store = SQLiteChatStore(db_path=db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def make_model():
    """Factory for ScriptedModel instances."""
    return ScriptedModel


@pytest.fixture
def make_store(persona):
    """Factory for RecordingMessageStore instances, knowing ``persona`` by default."""

    def factory(personas: list[Persona] | None = None, update_delay: float = 0.0):
        return RecordingMessageStore(
            personas=personas if personas is not None else [persona],
            update_delay=update_delay,
        )

    return factory
