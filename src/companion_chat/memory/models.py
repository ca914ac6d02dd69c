"""Memory data models."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class HistoryEntry(BaseModel):
    """One line of short-term transcript, ordered by timestamp (epoch ms)."""

    text: str
    timestamp: float


class HistoryWindow(BaseModel):
    """Bounded, time-windowed view of a key's short-term transcript."""

    entries: list[HistoryEntry] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def transcript(self) -> str:
        return "\n".join(entry.text for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class VectorRecord(BaseModel):
    """A stored utterance in the long-term similarity index."""

    id: str = Field(default_factory=_uuid)
    text: str
    embedding: list[float] | None = None
    persona_id: str
    created_at: datetime = Field(default_factory=_utcnow)


class RecallResult(BaseModel):
    """Outcome of a long-term memory search.

    ``degraded`` is set when the search failed and was replaced by an empty
    result; callers continue either way.
    """

    texts: list[str] = Field(default_factory=list)
    degraded: bool = False
    error: str | None = None

    @property
    def joined(self) -> str:
        return "\n".join(self.texts)
