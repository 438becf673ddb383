"""
Durable State Store — TTL key-value cache for sequence numbers and
resolution results.

Two implementations:
- MemoryStateStore: in-process dict, for tests and single-process dev runs
- SQLiteStateStore: aiosqlite-backed, survives restarts

Usage:
    store = SQLiteStateStore(Path("presence_state.db"))
    await store.start()

    await store.set_int("discord.seq.alice", 42, ttl_s=82)
    seq, exists = await store.get_int("discord.seq.alice")
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

import aiosqlite

from discord_presence.host.base import HostError, StateStore

logger = logging.getLogger(__name__)

_KIND_INT = "int"
_KIND_STRING = "string"


class MemoryStateStore(StateStore):
    """In-memory store: key → (kind, value, expires_at)."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, tuple[str, int | str, float]] = {}

    def _live(self, key: str) -> tuple[str, int | str] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        kind, value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return kind, value

    async def get_int(self, key: str) -> tuple[int, bool]:
        entry = self._live(key)
        if entry is None:
            return 0, False
        kind, value = entry
        if kind != _KIND_INT:
            raise HostError(f"cache entry '{key}' is not an integer")
        return int(value), True

    async def set_int(self, key: str, value: int, ttl_s: int) -> None:
        self._entries[key] = (_KIND_INT, int(value), self._clock() + ttl_s)

    async def get_string(self, key: str) -> tuple[str, bool]:
        entry = self._live(key)
        if entry is None:
            return "", False
        kind, value = entry
        if kind != _KIND_STRING:
            raise HostError(f"cache entry '{key}' is not a string")
        return str(value), True

    async def set_string(self, key: str, value: str, ttl_s: int) -> None:
        self._entries[key] = (_KIND_STRING, value, self._clock() + ttl_s)

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteStateStore(StateStore):
    """
    SQLite-backed TTL cache.

    One table, one row per key. Expiry is checked on read; expired rows are
    deleted lazily on access and in bulk by purge_expired().
    Single writer, multiple readers via aiosqlite.
    """

    def __init__(
        self,
        db_path: Path | str = "presence_state.db",
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = Path(db_path)
        self._clock = clock
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the database and create the cache table."""
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                value TEXT NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_cache_expires
            ON cache_entries(expires_at)
        """)
        await self._db.commit()
        purged = await self.purge_expired()
        logger.info("State store ready: %s (purged %d expired)", self.db_path, purged)

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise HostError("state store is not started")
        return self._db

    async def _get(self, key: str, kind: str) -> tuple[str, bool]:
        db = self._conn()
        async with db.execute(
            "SELECT kind, value, expires_at FROM cache_entries WHERE key = ?",
            (key,),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return "", False

        stored_kind, value, expires_at = row
        if self._clock() >= expires_at:
            await db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            await db.commit()
            return "", False
        if stored_kind != kind:
            raise HostError(f"cache entry '{key}' is a {stored_kind}, not a {kind}")
        return value, True

    async def _set(self, key: str, kind: str, value: str, ttl_s: int) -> None:
        db = self._conn()
        await db.execute(
            """
            INSERT INTO cache_entries (key, kind, value, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                kind = excluded.kind,
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, kind, value, self._clock() + ttl_s),
        )
        await db.commit()

    async def get_int(self, key: str) -> tuple[int, bool]:
        value, exists = await self._get(key, _KIND_INT)
        if not exists:
            return 0, False
        return int(value), True

    async def set_int(self, key: str, value: int, ttl_s: int) -> None:
        await self._set(key, _KIND_INT, str(int(value)), ttl_s)

    async def get_string(self, key: str) -> tuple[str, bool]:
        return await self._get(key, _KIND_STRING)

    async def set_string(self, key: str, value: str, ttl_s: int) -> None:
        await self._set(key, _KIND_STRING, value, ttl_s)

    async def remove(self, key: str) -> None:
        db = self._conn()
        await db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        await db.commit()

    async def purge_expired(self) -> int:
        """Delete every expired row. Returns the number removed."""
        db = self._conn()
        cursor = await db.execute(
            "DELETE FROM cache_entries WHERE expires_at <= ?", (self._clock(),)
        )
        await db.commit()
        return cursor.rowcount or 0
