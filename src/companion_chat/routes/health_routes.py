"""Liveness endpoint."""

from fastapi import APIRouter

from ..schemas import HealthResponse
from ..service_context import ServiceContext


def init_health_routes(default_context_cache: ServiceContext) -> APIRouter:
    router = APIRouter()

    @router.get("/health", tags=["system"], response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            ok=True,
            active_sessions=default_context_cache.orchestrator.active_sessions,
        )

    return router
