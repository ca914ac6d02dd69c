"""
API request/response schemas.

Pydantic models for the OpenAPI documentation of the chat endpoints.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from .storage.models import MessageRole


class ChatPrompt(BaseModel):
    """Body of a chat turn."""

    prompt: str = Field(
        ...,
        min_length=1,
        description="User message",
        json_schema_extra={"example": "Hi! How was your day?"},
    )


class MessageOut(BaseModel):
    """A persisted chat message."""

    id: str
    role: MessageRole
    content: str
    created_at: datetime


class MessageListResponse(BaseModel):
    """A user's conversation with a persona."""

    persona_id: str
    messages: List[MessageOut] = Field(default_factory=list)
    total_messages: int = Field(
        0, description="Messages stored for this persona across all users"
    )


class ClearHistoryResponse(BaseModel):
    """Result of clearing short-term history."""

    success: bool
    removed: int = Field(0, description="Number of history entries removed")


class HealthResponse(BaseModel):
    ok: bool
    active_sessions: int = 0
