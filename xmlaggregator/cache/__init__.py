"""Two-tier result cache."""

from xmlaggregator.cache.durable import DurableTier
from xmlaggregator.cache.entry import (
    AGGREGATE_CACHE_KEY,
    CacheEntry,
    source_cache_key,
    source_ttl_ms,
)
from xmlaggregator.cache.memory import MemoryTier
from xmlaggregator.cache.tiered import TieredCache

__all__ = [
    "AGGREGATE_CACHE_KEY",
    "CacheEntry",
    "DurableTier",
    "MemoryTier",
    "TieredCache",
    "source_cache_key",
    "source_ttl_ms",
]
