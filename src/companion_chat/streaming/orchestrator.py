"""Streaming response orchestrator.

Drives one persona reply through the session state machine:

    INIT -> STREAMING -> FINALIZING | ABORTING -> CLOSED

INIT runs in the caller's context, so setup errors (unknown persona, invalid
key, model unavailable) reach the HTTP layer before any response is sent and
before a placeholder message exists. Everything after INIT runs in a tracked
task that owns the placeholder message until the session closes:

- every token is forwarded to the output channel as soon as it arrives;
- the placeholder is checkpointed in the background at a fixed interval, with
  at most one checkpoint write in flight per session;
- on success the full reply is written to the placeholder and committed to
  both memory tiers;
- on model error, client disconnect or cancellation before the final write
  the placeholder is deleted and neither memory tier is touched;
- once the final write lands the reply is committed, and cancellation no
  longer removes it.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Sequence

from loguru import logger

from ..exceptions import ClientDisconnected, NotFound, StreamFailure
from ..llm.streaming_model import GenerationParams, StreamingModel
from ..memory.identity import IdentityKey
from ..memory.manager import MemoryManager
from ..prompting.prompt_builder import build_prompt
from ..storage.models import MessageRole
from ..storage.sqlite_store import MessageStore, PersonaStore
from .channel import OutputChannel
from .session import SessionOutcome, SessionState, SessionStatus, StreamSession

DEFAULT_CHECKPOINT_INTERVAL = 1.0
DEFAULT_CLEANUP_TIMEOUT = 5.0


@dataclass
class StreamHandle:
    """A started session: read ``channel``, await ``task`` for the outcome."""

    session_id: str
    channel: OutputChannel
    task: asyncio.Task

    async def wait(self) -> SessionOutcome:
        return await self.task


class ChatOrchestrator:
    """Runs persona replies against shared memory, message and model services."""

    def __init__(
        self,
        memory: MemoryManager,
        messages: MessageStore,
        personas: PersonaStore,
        model: StreamingModel,
        params: GenerationParams | None = None,
        checkpoint_interval: float = DEFAULT_CHECKPOINT_INTERVAL,
        cleanup_timeout: float = DEFAULT_CLEANUP_TIMEOUT,
        seed_delimiter: str = "\n\n",
        stop_markers: Sequence[str] = ("</s>",),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            memory: Memory manager shared by all sessions
            messages: Message persistence
            personas: Persona lookup
            model: Streaming model
            params: Sampling parameters for every generation
            checkpoint_interval: Seconds between placeholder checkpoints
            cleanup_timeout: Upper bound in seconds for each abort cleanup step
            seed_delimiter: Separator of persona seed lines
            stop_markers: End-of-sequence markers dropped from streamed tokens
            clock: Monotonic clock in seconds
        """
        self._memory = memory
        self._messages = messages
        self._personas = personas
        self._model = model
        self._params = params or GenerationParams()
        self._checkpoint_interval = checkpoint_interval
        self._cleanup_timeout = cleanup_timeout
        self._seed_delimiter = seed_delimiter
        self._stop_markers = tuple(m for m in stop_markers if m)
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()
        self._commits: set[asyncio.Task] = set()

    @property
    def active_sessions(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # INIT
    # ------------------------------------------------------------------

    async def start(self, persona_id: str, user_id: str, prompt: str) -> StreamHandle:
        """Run INIT and spawn the streaming task.

        Order: persona lookup, key validation, persist user message, read (and
        seed) the history window, append the user turn, long-term recall,
        prompt assembly, open the model stream, create the placeholder.

        Raises:
            ValidationError: Invalid identity key
            NotFound: Unknown persona
            StreamFailure: The model stream could not be opened
        """
        persona = await self._personas.get_persona(persona_id)
        if persona is None:
            raise NotFound("companion", persona_id)

        key = IdentityKey(
            persona_id=persona.id, model_id=self._model.model_id, user_id=user_id
        )
        key.require_valid()

        session = StreamSession(key=key, persona=persona, prompt=prompt)
        logger.info(
            f"Session {session.session_id} INIT: persona={persona.id}, user={user_id}"
        )

        session.user_message_id = await self._messages.create(
            prompt, MessageRole.USER, user_id, persona.id
        )

        window = await self._memory.read_window(key)
        if window.is_empty and persona.seed:
            await self._memory.seed(key, persona.seed, self._seed_delimiter)
            window = await self._memory.read_window(key)

        await self._memory.append(key, f"User: {prompt}")

        recall = await self._memory.vector_search(prompt, persona.id)
        if recall.degraded:
            logger.warning(
                f"Session {session.session_id}: continuing without long-term recall"
            )

        prompt_text = build_prompt(
            persona_name=persona.name,
            persona_instructions=persona.instructions,
            retrieved_memory=recall.joined,
            transcript=window.transcript,
            latest_utterance=prompt,
        )
        logger.debug(
            f"Session {session.session_id}: prompt chars={len(prompt_text)}, "
            f"history={len(window)}, recalled={len(recall.texts)}"
        )

        try:
            tokens = await self._model.open_stream(prompt_text, self._params)
        except Exception as e:
            logger.error(f"Session {session.session_id}: model stream failed to open: {e}")
            raise StreamFailure(f"Model stream failed to open: {e}") from e

        try:
            session.placeholder_message_id = await self._messages.create(
                "", MessageRole.SYSTEM, user_id, persona.id
            )
        except BaseException:
            await self._close_tokens(tokens)
            raise

        channel = OutputChannel()
        task = asyncio.create_task(
            self._run(session, tokens, channel),
            name=f"chat-session-{session.session_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return StreamHandle(session_id=session.session_id, channel=channel, task=task)

    # ------------------------------------------------------------------
    # STREAMING
    # ------------------------------------------------------------------

    async def _run(
        self,
        session: StreamSession,
        tokens: AsyncIterator[str],
        channel: OutputChannel,
    ) -> SessionOutcome:
        checkpoint_task: asyncio.Task | None = None
        try:
            session.transition(SessionState.STREAMING)
            session.last_checkpoint_at = self._clock()

            try:
                async for token in tokens:
                    token = self._drop_stop_markers(token)
                    if not token:
                        continue
                    session.accumulated_text += token
                    await channel.send(token)

                    now = self._clock()
                    if now - session.last_checkpoint_at < self._checkpoint_interval:
                        continue
                    if checkpoint_task is not None and not checkpoint_task.done():
                        # previous write still in flight; retry on the next token
                        continue
                    checkpoint_task = asyncio.create_task(
                        self._checkpoint(session, session.accumulated_text)
                    )
                    session.last_checkpoint_at = now
            except ClientDisconnected as e:
                return await self._abort(session, checkpoint_task, e)
            except Exception as e:
                failure = StreamFailure(f"Model stream failed: {e}")
                failure.__cause__ = e
                return await self._abort(session, checkpoint_task, failure)

            return await self._finalize(session, checkpoint_task)

        except asyncio.CancelledError:
            logger.info(f"Session {session.session_id} cancelled")
            if session.committed:
                if session.state is not SessionState.CLOSED:
                    session.transition(SessionState.CLOSED)
            elif session.state in (SessionState.STREAMING, SessionState.FINALIZING):
                await self._abort(session, checkpoint_task, ClientDisconnected("cancelled"))
            raise
        finally:
            await self._close_tokens(tokens)
            try:
                await asyncio.wait_for(channel.close(), timeout=self._cleanup_timeout)
            except Exception as e:
                logger.warning(f"Session {session.session_id}: channel close failed: {e}")

    async def _checkpoint(self, session: StreamSession, text: str) -> None:
        """Write a partial reply to the placeholder. Never raises."""
        try:
            await self._messages.update(session.placeholder_message_id, text)
            session.checkpoint_count += 1
            logger.debug(
                f"Session {session.session_id}: checkpoint #{session.checkpoint_count} "
                f"({len(text)} chars)"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Session {session.session_id}: checkpoint failed: {e}")

    # ------------------------------------------------------------------
    # FINALIZING / ABORTING
    # ------------------------------------------------------------------

    async def _finalize(
        self, session: StreamSession, checkpoint_task: asyncio.Task | None
    ) -> SessionOutcome:
        session.transition(SessionState.FINALIZING)
        text = session.accumulated_text
        try:
            if checkpoint_task is not None:
                await checkpoint_task
            await self._messages.update(session.placeholder_message_id, text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Session {session.session_id}: finalization failed: {e}")
            return await self._abort(session, None, e)

        # the reply is visible now; memory writes run to completion even if cancelled
        session.committed = True
        commit = asyncio.create_task(self._commit_turn(session, text))
        self._commits.add(commit)
        commit.add_done_callback(self._commits.discard)
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            await asyncio.wait({commit}, timeout=self._cleanup_timeout)
            raise

        session.transition(SessionState.CLOSED)
        logger.info(
            f"Session {session.session_id} completed: {len(text)} chars, "
            f"{session.checkpoint_count} checkpoints"
        )
        return SessionOutcome(
            session_id=session.session_id,
            status=SessionStatus.COMPLETED,
            text=text,
            checkpoint_count=session.checkpoint_count,
        )

    async def _abort(
        self,
        session: StreamSession,
        checkpoint_task: asyncio.Task | None,
        error: BaseException,
    ) -> SessionOutcome:
        session.transition(SessionState.ABORTING)
        logger.error(f"Session {session.session_id} aborting: {error}")

        if checkpoint_task is not None and not checkpoint_task.done():
            done, _ = await asyncio.wait({checkpoint_task}, timeout=self._cleanup_timeout)
            if not done:
                checkpoint_task.cancel()
                await asyncio.gather(checkpoint_task, return_exceptions=True)

        if session.placeholder_message_id is not None:
            try:
                await asyncio.wait_for(
                    self._messages.delete(session.placeholder_message_id),
                    timeout=self._cleanup_timeout,
                )
            except Exception as e:
                logger.error(
                    f"Session {session.session_id}: failed to delete placeholder "
                    f"{session.placeholder_message_id}: {e}"
                )

        session.transition(SessionState.CLOSED)
        return SessionOutcome(
            session_id=session.session_id,
            status=SessionStatus.ABORTED,
            text=session.accumulated_text,
            checkpoint_count=session.checkpoint_count,
            error=error,
        )

    async def _commit_turn(self, session: StreamSession, text: str) -> None:
        """Append the persona turn to both memory tiers. Never raises."""
        turn = f"{session.persona.name}: {text}"
        try:
            await self._memory.append(session.key, turn)
        except Exception as e:
            logger.error(
                f"Session {session.session_id}: history append failed, reply kept: {e}"
            )
            return

        try:
            await self._memory.vector_store(turn, session.persona.id)
        except Exception as e:
            logger.warning(
                f"Session {session.session_id}: long-term store failed, "
                f"reply kept: {e}"
            )

    def _drop_stop_markers(self, token: str) -> str:
        for marker in self._stop_markers:
            token = token.replace(marker, "")
        return token

    @staticmethod
    async def _close_tokens(tokens: AsyncIterator[str]) -> None:
        aclose = getattr(tokens, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug(f"Token stream close raised: {e}")

    async def shutdown(self) -> None:
        """Cancel in-flight sessions and wait for their cleanup."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(f"Cancelling {len(tasks)} in-flight chat sessions")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
