"""Streaming response orchestration."""

from .channel import OutputChannel
from .orchestrator import ChatOrchestrator, StreamHandle
from .session import SessionOutcome, SessionState, SessionStatus, StreamSession

__all__ = [
    "OutputChannel",
    "ChatOrchestrator",
    "StreamHandle",
    "SessionOutcome",
    "SessionState",
    "SessionStatus",
    "StreamSession",
]
