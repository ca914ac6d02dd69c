"""Per-request streaming session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from loguru import logger

from ..exceptions import FatalError
from ..memory.identity import IdentityKey
from ..storage.models import Persona


class SessionState(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    ABORTING = "aborting"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INIT: frozenset({SessionState.STREAMING, SessionState.CLOSED}),
    SessionState.STREAMING: frozenset({SessionState.FINALIZING, SessionState.ABORTING}),
    SessionState.FINALIZING: frozenset({SessionState.CLOSED, SessionState.ABORTING}),
    SessionState.ABORTING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class SessionStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class StreamSession:
    """Ephemeral state of one in-flight reply. Never persisted or shared."""

    key: IdentityKey
    persona: Persona
    prompt: str
    session_id: str = field(default_factory=lambda: uuid4().hex[:12])
    user_message_id: str | None = None
    placeholder_message_id: str | None = None
    accumulated_text: str = ""
    last_checkpoint_at: float = 0.0
    checkpoint_count: int = 0
    committed: bool = False
    state: SessionState = SessionState.INIT

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise FatalError(
                f"Illegal session transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            f"Session {self.session_id}: {self.state.value} -> {new_state.value}"
        )
        self.state = new_state


@dataclass(frozen=True)
class SessionOutcome:
    """How a session ended.

    ``completed`` means the reply was committed to the message store and both
    memory tiers; ``aborted`` means the placeholder was removed and nothing
    was written to memory.
    """

    session_id: str
    status: SessionStatus
    text: str
    checkpoint_count: int = 0
    error: BaseException | None = None

    @property
    def completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED
