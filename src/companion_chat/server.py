"""
Companion chat web server.

Builds the FastAPI application around a ``ServiceContext``. The context is
created up front so routers can close over it; the lifespan opens and closes
its resources.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger

from . import __version__
from .config import AppConfig
from .exceptions import CompanionChatError, RateLimited
from .logging_setup import setup_logging
from .routes import init_api_routes
from .service_context import ServiceContext


def register_error_handlers(app: FastAPI) -> None:
    """Map chat errors to plain-text responses without internal detail."""

    @app.exception_handler(CompanionChatError)
    async def companion_chat_error_handler(
        request: Request, exc: CompanionChatError
    ) -> PlainTextResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
        else:
            logger.info(
                f"{request.method} {request.url.path} -> {exc.status_code}: {exc}"
            )
        headers = None
        if isinstance(exc, RateLimited) and exc.retry_after > 0:
            headers = {"Retry-After": str(int(exc.retry_after) + 1)}
        return PlainTextResponse(
            exc.public_message, status_code=exc.status_code, headers=headers
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return PlainTextResponse("Internal Error", status_code=500)


def create_app(
    config: Optional[AppConfig] = None,
    context: Optional[ServiceContext] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Application config. Ignored when ``context`` is given.
        context: Prebuilt service context, mainly for tests.

    Returns:
        FastAPI: Configured application.
    """
    if context is None:
        context = ServiceContext.from_config(config or AppConfig())
    config = context.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.logging)
        logger.info("Starting companion chat server...")
        await context.initialize()
        try:
            yield
        finally:
            logger.info("Shutting down companion chat server...")
            await context.close()

    app = FastAPI(
        title="Companion Chat API",
        description="Persona chat with short-term history and long-term memory",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(init_api_routes(context))
    return app
