"""Chat routes: streamed persona replies and conversation reads."""

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from ..auth import get_current_user
from ..memory.identity import IdentityKey
from ..schemas import (
    ChatPrompt,
    ClearHistoryResponse,
    MessageListResponse,
    MessageOut,
)
from ..service_context import ServiceContext
from ..streaming.orchestrator import StreamHandle

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


async def _stream_body(handle: StreamHandle) -> AsyncIterator[str]:
    """Forward channel chunks to the response; flag the channel when the client leaves."""
    try:
        async for chunk in handle.channel:
            yield chunk
    finally:
        if not handle.channel.closed:
            handle.channel.disconnect()


def init_chat_routes(default_context_cache: ServiceContext) -> APIRouter:
    """
    Create routes for chat endpoints.

    Args:
        default_context_cache: Service context shared by all requests.

    Returns:
        APIRouter: Router with chat endpoints.
    """
    router = APIRouter()

    @router.post(
        "/api/chat/{persona_id}",
        tags=["chat"],
        summary="Chat with a companion",
        description="Streams the companion's reply as plain text chunks.",
        response_class=StreamingResponse,
        responses={
            200: {"content": {"text/plain": {}}, "description": "Streamed reply"},
            401: {"description": "Missing user identity"},
            404: {"description": "Unknown companion"},
            429: {"description": "Rate limit exceeded"},
        },
    )
    async def chat(
        persona_id: str,
        body: ChatPrompt,
        request: Request,
        user_id: str = Depends(get_current_user),
    ):
        await default_context_cache.rate_limiter.check(f"{request.url.path}-{user_id}")

        handle = await default_context_cache.orchestrator.start(
            persona_id=persona_id, user_id=user_id, prompt=body.prompt
        )
        logger.info(f"Streaming session {handle.session_id} to user {user_id}")
        return StreamingResponse(_stream_body(handle), media_type=STREAM_MEDIA_TYPE)

    @router.get(
        "/api/chat/{persona_id}/messages",
        tags=["chat"],
        summary="List conversation messages",
        response_model=MessageListResponse,
    )
    async def list_messages(
        persona_id: str, user_id: str = Depends(get_current_user)
    ) -> MessageListResponse:
        store = default_context_cache.store
        persona = await store.require_persona(persona_id)
        messages = await store.list_messages(persona.id, user_id)
        return MessageListResponse(
            persona_id=persona.id,
            messages=[
                MessageOut(
                    id=m.id, role=m.role, content=m.content, created_at=m.created_at
                )
                for m in messages
            ],
            total_messages=await store.count_messages(persona.id),
        )

    @router.delete(
        "/api/chat/{persona_id}/history",
        tags=["chat"],
        summary="Clear short-term history",
        description="Forget the caller's recent turns with this companion. "
        "Stored messages and long-term memory are kept.",
        response_model=ClearHistoryResponse,
    )
    async def clear_history(
        persona_id: str, user_id: str = Depends(get_current_user)
    ) -> ClearHistoryResponse:
        persona = await default_context_cache.store.require_persona(persona_id)
        key = IdentityKey(
            persona_id=persona.id,
            model_id=default_context_cache.model.model_id,
            user_id=user_id,
        )
        removed = await default_context_cache.memory.clear_history(key)
        logger.info(f"Cleared {removed} history entries for {key.storage_key}")
        return ClearHistoryResponse(success=True, removed=removed)

    return router
