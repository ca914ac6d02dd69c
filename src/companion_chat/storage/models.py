"""Persisted chat records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """A persisted chat message. Persona replies use the ``system`` role."""

    id: str
    content: str
    role: MessageRole
    user_id: str
    persona_id: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Persona(BaseModel):
    """A configured chat persona."""

    id: str
    name: str
    instructions: str = ""
    seed: str = ""
    description: str = ""
