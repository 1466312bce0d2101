"""Durable cache tier backed by SQLite (aiosqlite).

One row per key. Payloads are stored as JSON text; a row whose payload or
timestamps cannot be decoded is purged on sight and reported as a miss.

Write serialization:
    All writes go through ``_write_lock``. Reads open their own connection
    and run concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from xmlaggregator.cache.entry import CacheEntry
from xmlaggregator.errors import CacheReadError, CacheWriteError
from xmlaggregator.lib.json import JSONDecodeError, JSONEncodeError, dumps, loads
from xmlaggregator.lib.log import get_logger

logger = get_logger(__name__)

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL,
    ttl_ms INTEGER NOT NULL,
    expires_at_ms INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cache_entries_expires ON cache_entries(expires_at_ms);
"""


def _row_to_entry(row: aiosqlite.Row) -> CacheEntry:
    """Decode one row; raises ``CacheReadError`` when it is unusable."""
    try:
        payload = loads(row["payload"])
        return CacheEntry(
            key=row["key"],
            payload=payload,
            created_at_ms=int(row["created_at_ms"]),
            ttl_ms=int(row["ttl_ms"]),
            expires_at_ms=int(row["expires_at_ms"]),
        )
    except (JSONDecodeError, TypeError, ValueError) as exc:
        raise CacheReadError(f"Corrupted cache record '{row['key']}': {exc}") from exc


class DurableTier:
    """SQLite table of cache entries, unbounded.

    Example:
        tier = DurableTier(tmp_path / "cache.db")
        await tier.put(CacheEntry.create("k", {"a": 1}, ttl_ms=1000, now_ms=0))
        entry = await tier.get("k")
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._write_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._schema_ensured = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def _ensure_schema_once(self) -> None:
        if self._schema_ensured:
            return
        async with self._schema_lock:
            if self._schema_ensured:
                return
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self._db_path, timeout=30) as conn:
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.executescript(SCHEMA_DDL)
                await conn.commit()
            self._schema_ensured = True

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        await self._ensure_schema_once()
        async with aiosqlite.connect(self._db_path, timeout=30) as conn:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA busy_timeout = 30000")
            yield conn

    async def get(self, key: str) -> CacheEntry | None:
        async with self._connection() as conn:
            cursor = await conn.execute("SELECT * FROM cache_entries WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return _row_to_entry(row)
        except CacheReadError as exc:
            logger.warning("cache_record_corrupted", key=key, error=str(exc))
            await self.delete(key)
            return None

    async def put(self, entry: CacheEntry) -> None:
        """Insert or replace one record.

        Raises:
            CacheWriteError: When the payload cannot be encoded or the write fails.
        """
        try:
            payload = dumps(entry.payload)
        except JSONEncodeError as exc:
            raise CacheWriteError(f"Payload for '{entry.key}' is not JSON-serialisable: {exc}") from exc
        try:
            async with self._write_lock, self._connection() as conn:
                await conn.execute(
                    """
                    INSERT OR REPLACE INTO cache_entries (key, payload, created_at_ms, ttl_ms, expires_at_ms)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (entry.key, payload, entry.created_at_ms, entry.ttl_ms, entry.expires_at_ms),
                )
                await conn.commit()
        except (aiosqlite.Error, OSError) as exc:
            raise CacheWriteError(f"Failed to persist cache entry '{entry.key}': {exc}") from exc

    async def delete(self, key: str) -> bool:
        async with self._write_lock, self._connection() as conn:
            cursor = await conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            await conn.commit()
            return cursor.rowcount > 0

    async def clear(self) -> int:
        async with self._write_lock, self._connection() as conn:
            cursor = await conn.execute("DELETE FROM cache_entries")
            await conn.commit()
            return max(cursor.rowcount, 0)

    async def remove_expired(self, now_ms: int) -> int:
        """Delete expired rows and any row that no longer decodes."""
        async with self._write_lock, self._connection() as conn:
            cursor = await conn.execute("SELECT * FROM cache_entries")
            rows = await cursor.fetchall()
            doomed: list[str] = []
            for row in rows:
                try:
                    entry = _row_to_entry(row)
                except CacheReadError as exc:
                    logger.warning("cache_record_corrupted", key=row["key"], error=str(exc))
                    doomed.append(row["key"])
                    continue
                if entry.is_expired(now_ms):
                    doomed.append(entry.key)
            if doomed:
                await conn.executemany("DELETE FROM cache_entries WHERE key = ?", [(key,) for key in doomed])
                await conn.commit()
        return len(doomed)

    async def count(self) -> int:
        async with self._connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM cache_entries")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0


__all__ = ["DurableTier", "SCHEMA_DDL"]
