"""Caller-facing output channel.

An unbounded asyncio queue of text chunks between the session task and the
HTTP response body. ``send`` never waits on the reader, so token delivery is
never held up by anything the session does afterwards.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from loguru import logger

from ..exceptions import ClientDisconnected

_CLOSE = object()


class OutputChannel:
    """Ordered text stream with a single close and disconnect detection."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._disconnected = False
        self.chunks_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    async def send(self, text: str) -> None:
        """Queue a chunk for the reader.

        Raises:
            ClientDisconnected: If the reader went away or the channel is closed
        """
        if self._disconnected:
            raise ClientDisconnected("Client disconnected from output channel")
        if self._closed:
            raise ClientDisconnected("Output channel already closed")
        self._queue.put_nowait(text)
        self.chunks_sent += 1

    async def close(self) -> None:
        """End the stream. Later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSE)
        logger.debug(f"Output channel closed after {self.chunks_sent} chunks")

    def disconnect(self) -> None:
        """Mark the reader as gone; the next ``send`` fails."""
        if not self._disconnected and not self._closed:
            logger.info("Output channel reader disconnected")
        self._disconnected = True

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item

    async def read_all(self) -> str:
        """Drain the channel until close and return the concatenation."""
        return "".join([chunk async for chunk in self])
