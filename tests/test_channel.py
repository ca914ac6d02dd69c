"""Tests for the caller-facing OutputChannel."""

import asyncio

import pytest

from companion_chat.exceptions import ClientDisconnected
from companion_chat.streaming.channel import OutputChannel


@pytest.mark.asyncio
async def test_chunks_delivered_in_order():
    channel = OutputChannel()
    for chunk in ["a", "b", "c"]:
        await channel.send(chunk)
    await channel.close()

    assert await channel.read_all() == "abc"
    assert channel.chunks_sent == 3


@pytest.mark.asyncio
async def test_reader_sees_chunks_before_close():
    channel = OutputChannel()
    received = []

    async def reader():
        async for chunk in channel:
            received.append(chunk)

    task = asyncio.create_task(reader())
    await channel.send("hello")
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert received == ["hello"]

    await channel.close()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_close_is_idempotent():
    channel = OutputChannel()
    await channel.close()
    await channel.close()
    assert channel.closed
    assert await channel.read_all() == ""


@pytest.mark.asyncio
async def test_send_after_close_raises():
    channel = OutputChannel()
    await channel.close()
    with pytest.raises(ClientDisconnected):
        await channel.send("late")


@pytest.mark.asyncio
async def test_send_after_disconnect_raises():
    channel = OutputChannel()
    await channel.send("a")
    channel.disconnect()

    assert channel.disconnected
    with pytest.raises(ClientDisconnected):
        await channel.send("b")
