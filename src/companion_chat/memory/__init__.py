"""
Conversational memory.

Two tiers behind one facade:
- history: bounded, time-windowed transcript per (persona, model, user)
- vector_store: persona-namespaced similarity search over past turns
"""

from .embedding import EmbeddingService
from .history import HISTORY_LIMIT, HISTORY_WINDOW_HOURS, HistoryStore
from .identity import IdentityKey
from .manager import MemoryManager
from .models import HistoryEntry, HistoryWindow, RecallResult, VectorRecord
from .vector_store import VectorMemory

__all__ = [
    "EmbeddingService",
    "HISTORY_LIMIT",
    "HISTORY_WINDOW_HOURS",
    "HistoryStore",
    "IdentityKey",
    "MemoryManager",
    "HistoryEntry",
    "HistoryWindow",
    "RecallResult",
    "VectorRecord",
    "VectorMemory",
]
