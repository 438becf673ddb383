"""Tests for the TTL state stores — in-memory and SQLite."""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from discord_presence.host.base import HostError
from discord_presence.host.state_store import MemoryStateStore, SQLiteStateStore
from helpers import FakeClock


@pytest_asyncio.fixture
async def sqlite_store(clock):
    """Create a SQLiteStateStore with a temp DB for each test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        s = SQLiteStateStore(db_path=Path(tmpdir) / "test_state.db", clock=clock)
        await s.start()
        yield s
        await s.stop()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, store, sqlite_store):
    return store if request.param == "memory" else sqlite_store


# ─── Shared contract ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_missing_key(any_store):
    assert await any_store.get_int("nope") == (0, False)
    assert await any_store.get_string("nope") == ("", False)


@pytest.mark.asyncio
async def test_int_round_trip(any_store):
    await any_store.set_int("discord.seq.alice", 42, 82)
    assert await any_store.get_int("discord.seq.alice") == (42, True)


@pytest.mark.asyncio
async def test_string_round_trip_including_empty(any_store):
    await any_store.set_string("a", "value", 60)
    await any_store.set_string("b", "", 60)
    assert await any_store.get_string("a") == ("value", True)
    assert await any_store.get_string("b") == ("", True)


@pytest.mark.asyncio
async def test_entries_expire(any_store, clock):
    await any_store.set_int("k", 1, 82)
    clock.advance(81)
    assert await any_store.get_int("k") == (1, True)
    clock.advance(1)
    assert await any_store.get_int("k") == (0, False)


@pytest.mark.asyncio
async def test_overwrite_resets_ttl(any_store, clock):
    await any_store.set_int("k", 1, 10)
    clock.advance(8)
    await any_store.set_int("k", 2, 10)
    clock.advance(8)
    assert await any_store.get_int("k") == (2, True)


@pytest.mark.asyncio
async def test_remove(any_store):
    await any_store.set_int("k", 1, 10)
    await any_store.remove("k")
    await any_store.remove("never-set")
    assert await any_store.get_int("k") == (0, False)


@pytest.mark.asyncio
async def test_kind_mismatch_raises(any_store):
    await any_store.set_string("k", "text", 10)
    with pytest.raises(HostError):
        await any_store.get_int("k")


# ─── SQLite specifics ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_sqlite_survives_restart():
    clock = FakeClock()
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "state.db"
        first = SQLiteStateStore(db_path=db_path, clock=clock)
        await first.start()
        await first.set_string("spotify.url.x", "https://open.spotify.com/track/abc", 3600)
        await first.stop()

        second = SQLiteStateStore(db_path=db_path, clock=clock)
        await second.start()
        try:
            assert await second.get_string("spotify.url.x") == (
                "https://open.spotify.com/track/abc",
                True,
            )
        finally:
            await second.stop()


@pytest.mark.asyncio
async def test_sqlite_purge_expired(sqlite_store, clock):
    await sqlite_store.set_int("short", 1, 5)
    await sqlite_store.set_int("long", 2, 500)
    clock.advance(10)
    assert await sqlite_store.purge_expired() == 1
    assert await sqlite_store.get_int("long") == (2, True)


@pytest.mark.asyncio
async def test_sqlite_requires_start():
    s = SQLiteStateStore(db_path="unused.db")
    with pytest.raises(HostError, match="not started"):
        await s.get_int("k")


def test_memory_len_counts_entries():
    s = MemoryStateStore()
    assert len(s) == 0
