"""Sorted-set backends for the short-term history store."""

from loguru import logger

from ...config import HistoryConfig, StorageConfig
from .base import SortedSetBackend
from .redis_backend import RedisSortedSetBackend
from .sqlite_backend import SQLiteSortedSetBackend


def create_backend(
    history: HistoryConfig, storage: StorageConfig
) -> SortedSetBackend:
    """Build the configured backend (not yet initialized)."""
    if history.backend == "redis":
        logger.info(f"Using Redis history backend: {history.redis_url}")
        return RedisSortedSetBackend(redis_url=history.redis_url)
    logger.info(f"Using SQLite history backend: {storage.sqlite_db_path}")
    return SQLiteSortedSetBackend(db_path=storage.sqlite_db_path)


__all__ = [
    "SortedSetBackend",
    "RedisSortedSetBackend",
    "SQLiteSortedSetBackend",
    "create_backend",
]
