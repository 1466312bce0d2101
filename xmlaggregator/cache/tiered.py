"""Two-tier cache: bounded memory tier in front of the durable SQLite tier.

Reads check the memory tier first and fall back to the durable tier, promoting
a live durable hit into memory with its original timestamps. Writes go to both
tiers before returning. Expired entries read as absent but are only removed by
``delete``, ``sweep_expired`` or capacity eviction.
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiosqlite

from xmlaggregator.cache.durable import DurableTier
from xmlaggregator.cache.entry import (
    AGGREGATE_CACHE_KEY,
    DEFAULT_AGGREGATE_TTL_MS,
    MIN_SOURCE_TTL_MS,
    CacheEntry,
    source_cache_key,
    source_ttl_ms,
)
from xmlaggregator.cache.memory import MemoryTier
from xmlaggregator.config import Settings
from xmlaggregator.errors import CacheWriteError
from xmlaggregator.lib.clock import Clock, SystemClock
from xmlaggregator.lib.json import encoded_size
from xmlaggregator.lib.log import get_logger
from xmlaggregator.lib.stats import PipelineStatistics

logger = get_logger(__name__)


class TieredCache:
    """Key/value cache with per-entry expiry across two tiers.

    Example:
        cache = TieredCache(MemoryTier(50), DurableTier(path), clock=ManualClock())
        await cache.set("k", {"v": 1}, ttl_ms=100)
        await cache.get("k")  # {"v": 1}
    """

    def __init__(
        self,
        memory: MemoryTier,
        durable: DurableTier,
        *,
        statistics: PipelineStatistics | None = None,
        clock: Clock | None = None,
        default_ttl_ms: int = 300_000,
        aggregate_ttl_ms: int = DEFAULT_AGGREGATE_TTL_MS,
        min_source_ttl_ms: int = MIN_SOURCE_TTL_MS,
        source_key_bucket_s: int = 0,
    ) -> None:
        self._memory = memory
        self._durable = durable
        self._statistics = statistics or PipelineStatistics()
        self._clock = clock or SystemClock()
        self._default_ttl_ms = default_ttl_ms
        self._aggregate_ttl_ms = aggregate_ttl_ms
        self._min_source_ttl_ms = min_source_ttl_ms
        self._source_key_bucket_s = source_key_bucket_s

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        statistics: PipelineStatistics | None = None,
        clock: Clock | None = None,
    ) -> TieredCache:
        return cls(
            MemoryTier(settings.memory_capacity),
            DurableTier(settings.cache_db_path),
            statistics=statistics,
            clock=clock,
            default_ttl_ms=settings.default_ttl_ms,
            aggregate_ttl_ms=settings.aggregate_ttl_ms,
            min_source_ttl_ms=settings.min_source_ttl_ms,
            source_key_bucket_s=settings.source_key_bucket_s,
        )

    @property
    def memory(self) -> MemoryTier:
        return self._memory

    @property
    def durable(self) -> DurableTier:
        return self._durable

    def _store_in_memory(self, entry: CacheEntry) -> None:
        evicted = self._memory.put(entry)
        if evicted is not None:
            self._statistics.record_cache("evictions")
            logger.debug("cache_evicted", key=evicted)

    async def get(self, key: str) -> Any | None:
        """Return the live payload for ``key`` or ``None``."""
        now = self._clock.now_ms()
        entry = self._memory.get(key)
        if entry is not None and not entry.is_expired(now):
            self._statistics.record_cache("hits")
            return entry.payload

        try:
            durable_entry = await self._durable.get(key)
        except (aiosqlite.Error, OSError) as exc:
            logger.warning("cache_durable_read_failed", key=key, error=str(exc))
            durable_entry = None

        if durable_entry is not None and not durable_entry.is_expired(now):
            self._store_in_memory(durable_entry)
            self._statistics.record_cache("hits")
            return durable_entry.payload

        self._statistics.record_cache("misses")
        return None

    async def set(self, key: str, payload: Any, ttl_ms: int | None = None) -> bool:
        """Write ``payload`` to both tiers.

        ``ttl_ms`` of ``None`` means the default TTL; ``0`` stores an entry that
        expires on the next clock tick. ``None`` payloads are rejected because
        ``get`` reports a miss as ``None``.

        Raises:
            ValueError: ``payload`` is ``None``.
            CacheWriteError: The durable write failed. The memory tier keeps
                the new entry.
        """
        if payload is None:
            raise ValueError("Cannot cache a None payload")
        ttl = ttl_ms if ttl_ms is not None else self._default_ttl_ms
        entry = CacheEntry.create(key, payload, ttl, self._clock.now_ms())
        self._store_in_memory(entry)
        try:
            await self._durable.put(entry)
        except CacheWriteError:
            self._statistics.record_cache("write_failures")
            raise
        self._statistics.record_cache("sets")
        return True

    async def delete(self, key: str) -> bool:
        in_memory = self._memory.delete(key)
        on_disk = await self._durable.delete(key)
        removed = in_memory or on_disk
        if removed:
            self._statistics.record_cache("deletes")
        return removed

    async def clear(self) -> None:
        dropped_memory = self._memory.clear()
        dropped_disk = await self._durable.clear()
        logger.info("cache_cleared", memory=dropped_memory, durable=dropped_disk)

    async def sweep_expired(self) -> int:
        """Remove expired entries from both tiers; returns the number removed."""
        now = self._clock.now_ms()
        removed = self._memory.remove_expired(now)
        removed += await self._durable.remove_expired(now)
        if removed:
            logger.info("cache_swept", removed=removed)
        return removed

    async def sweep_periodically(self, interval_s: float, stop_event: asyncio.Event) -> None:
        """Run ``sweep_expired`` every ``interval_s`` seconds until ``stop_event`` is set."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_s)
            except asyncio.TimeoutError:
                try:
                    await self.sweep_expired()
                except (aiosqlite.Error, OSError) as exc:
                    logger.warning("cache_sweep_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Source and aggregate helpers

    def source_key(self, source_id: str) -> str:
        return source_cache_key(
            source_id,
            bucket_s=self._source_key_bucket_s,
            now_ms=self._clock.now_ms(),
        )

    async def set_source_payload(self, source_id: str, payload: Any, interval_s: int) -> bool:
        ttl = source_ttl_ms(interval_s, min_ttl_ms=self._min_source_ttl_ms)
        return await self.set(self.source_key(source_id), payload, ttl)

    async def get_source_payload(self, source_id: str) -> Any | None:
        return await self.get(self.source_key(source_id))

    async def set_aggregate(self, payload: Any, ttl_ms: int | None = None) -> bool:
        return await self.set(AGGREGATE_CACHE_KEY, payload, ttl_ms if ttl_ms is not None else self._aggregate_ttl_ms)

    async def get_aggregate(self) -> Any | None:
        return await self.get(AGGREGATE_CACHE_KEY)

    async def drop_aggregate(self) -> bool:
        return await self.delete(AGGREGATE_CACHE_KEY)

    # ------------------------------------------------------------------
    # Introspection

    def stats(self) -> dict[str, Any]:
        snapshot = self._statistics.snapshot()
        cache_stats = dict(snapshot["cache"])  # type: ignore[call-overload]
        cache_stats["memory_size"] = len(self._memory)
        cache_stats["memory_capacity"] = self._memory.capacity
        cache_stats["last_reset"] = snapshot["last_reset"]
        return cache_stats

    def debug_info(self) -> dict[str, Any]:
        now = self._clock.now_ms()
        return {
            "memory": [
                {
                    "key": entry.key,
                    "size": encoded_size(entry.payload),
                    "expires_in_ms": entry.expires_in_ms(now),
                    "expired": entry.is_expired(now),
                }
                for entry in self._memory.entries()
            ],
            "stats": self.stats(),
            "db_path": str(self._durable.db_path),
        }


__all__ = ["TieredCache"]
