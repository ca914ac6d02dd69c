"""Tests for the short-term HistoryStore."""

from unittest.mock import AsyncMock

import pytest

from companion_chat.exceptions import ValidationError
from companion_chat.memory.history import HISTORY_LIMIT, HistoryStore
from companion_chat.memory.identity import IdentityKey

HOUR_MS = 60 * 60 * 1000


async def _texts(history, key):
    window = await history.read_window(key)
    return [entry.text for entry in window.entries]


@pytest.mark.asyncio
async def test_append_and_read_in_order(history, key, ms_clock):
    for text in ["User: hi", "Aria: hello", "User: how are you?"]:
        await history.append(key, text)
        ms_clock.advance(10)

    assert await _texts(history, key) == ["User: hi", "Aria: hello", "User: how are you?"]


@pytest.mark.asyncio
async def test_transcript_joins_lines(history, key, ms_clock):
    await history.append(key, "User: hi")
    ms_clock.advance(1)
    await history.append(key, "Aria: hello")

    window = await history.read_window(key)
    assert window.transcript == "User: hi\nAria: hello"
    assert len(window) == 2


@pytest.mark.asyncio
async def test_empty_window(history, key):
    window = await history.read_window(key)
    assert window.is_empty
    assert window.transcript == ""


@pytest.mark.asyncio
async def test_trims_to_limit_evicting_oldest(history, key, ms_clock):
    for i in range(HISTORY_LIMIT + 5):
        await history.append(key, f"line {i}")
        ms_clock.advance(1)

    assert await history.count(key) == HISTORY_LIMIT
    texts = await _texts(history, key)
    assert texts[0] == "line 5"
    assert texts[-1] == f"line {HISTORY_LIMIT + 4}"


@pytest.mark.asyncio
async def test_read_excludes_entries_older_than_window(history, key, ms_clock):
    await history.append(key, "User: yesterday")
    ms_clock.advance(25 * HOUR_MS)
    await history.append(key, "User: today")

    assert await _texts(history, key) == ["User: today"]
    # still stored until evicted by capacity
    assert await history.count(key) == 2


@pytest.mark.asyncio
async def test_keys_do_not_share_history(history, key, ms_clock):
    other = IdentityKey(persona_id="aria", model_id="test-model", user_id="user-2")
    await history.append(key, "User: mine")
    ms_clock.advance(1)
    await history.append(other, "User: theirs")

    assert await _texts(history, key) == ["User: mine"]
    assert await _texts(history, other) == ["User: theirs"]


@pytest.mark.asyncio
async def test_seed_splits_strips_and_orders(history, key):
    seeded = await history.seed(
        key, "User: hi Aria\n\n  Aria: hello!  \n\n\n\nUser: nice", delimiter="\n\n"
    )

    assert seeded is True
    assert await _texts(history, key) == ["User: hi Aria", "Aria: hello!", "User: nice"]


@pytest.mark.asyncio
async def test_seed_is_noop_when_history_exists(history, key, ms_clock):
    await history.append(key, "User: first")
    ms_clock.advance(1)

    seeded = await history.seed(key, "User: a\nAria: b")

    assert seeded is False
    assert await _texts(history, key) == ["User: first"]


@pytest.mark.asyncio
async def test_seed_twice_inserts_once(history, key):
    assert await history.seed(key, "User: a\nAria: b") is True
    assert await history.seed(key, "User: a\nAria: b") is False
    assert await history.count(key) == 2


@pytest.mark.asyncio
async def test_blank_seed_inserts_nothing(history, key):
    assert await history.seed(key, "  \n \n") is False
    assert await history.count(key) == 0


@pytest.mark.asyncio
async def test_append_after_seed_sorts_last_without_clock_advance(history, key):
    await history.seed(key, "User: a\nAria: b\nUser: c\nAria: d")
    await history.append(key, "User: live")

    texts = await _texts(history, key)
    assert texts == ["User: a", "Aria: b", "User: c", "Aria: d", "User: live"]


@pytest.mark.asyncio
async def test_seed_respects_limit(sqlite_backend, key, ms_clock):
    history = HistoryStore(backend=sqlite_backend, limit=3, clock=ms_clock)
    await history.seed(key, "\n".join(f"line {i}" for i in range(5)))

    assert await _texts(history, key) == ["line 2", "line 3", "line 4"]


@pytest.mark.asyncio
async def test_clear_removes_entries(history, key, ms_clock):
    await history.append(key, "User: hi")
    ms_clock.advance(1)
    await history.append(key, "Aria: hey")

    assert await history.clear(key) == 2
    assert (await history.read_window(key)).is_empty


@pytest.mark.asyncio
async def test_invalid_key_rejected_before_storage():
    backend = AsyncMock()
    history = HistoryStore(backend=backend)
    bad = IdentityKey(persona_id="aria", model_id="", user_id="user-1")

    with pytest.raises(ValidationError):
        await history.append(bad, "User: hi")
    with pytest.raises(ValidationError):
        await history.read_window(bad)
    with pytest.raises(ValidationError):
        await history.seed(bad, "User: hi")

    backend.zadd.assert_not_called()
    backend.zrange_by_score.assert_not_called()
    backend.zcard.assert_not_called()
