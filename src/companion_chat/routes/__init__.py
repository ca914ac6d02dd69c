"""
Route modules for the companion chat server.

- **chat_routes**: persona conversations
    - `POST /api/chat/{persona_id}`: streamed reply
    - `GET /api/chat/{persona_id}/messages`: conversation messages
    - `DELETE /api/chat/{persona_id}/history`: clear short-term history

- **health_routes**: liveness
    - `GET /health`
"""

from fastapi import APIRouter

from ..service_context import ServiceContext
from .chat_routes import init_chat_routes
from .health_routes import init_health_routes


def init_api_routes(default_context_cache: ServiceContext) -> APIRouter:
    """
    Aggregate all sub-routers into a single router.

    Args:
        default_context_cache: Service context shared by all requests.

    Returns:
        APIRouter: Configured router with all endpoints.
    """
    router = APIRouter()
    router.include_router(init_chat_routes(default_context_cache))
    router.include_router(init_health_routes(default_context_cache))
    return router


__all__ = ["init_api_routes", "init_chat_routes", "init_health_routes"]
