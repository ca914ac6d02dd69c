"""Loguru sink setup."""

from __future__ import annotations

import sys

from loguru import logger

from .config import LoggingConfig

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Replace the default loguru handler with configured sinks."""
    config = config or LoggingConfig()
    logger.remove()
    logger.add(sys.stderr, level=config.level.upper(), format=_FORMAT)
    if config.file:
        logger.add(
            config.file,
            level=config.level.upper(),
            rotation=config.rotation,
            enqueue=True,
            encoding="utf-8",
        )
    logger.debug(f"Logging configured: level={config.level}, file={config.file}")
