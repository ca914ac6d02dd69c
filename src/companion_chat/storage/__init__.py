"""Persistence for personas and chat messages."""

from .models import ChatMessage, MessageRole, Persona
from .sqlite_store import MessageStore, PersonaStore, SQLiteChatStore

__all__ = [
    "ChatMessage",
    "MessageRole",
    "Persona",
    "MessageStore",
    "PersonaStore",
    "SQLiteChatStore",
]
