"""Bounded in-process cache tier."""

from __future__ import annotations

import threading
from collections import OrderedDict

from xmlaggregator.cache.entry import CacheEntry


class MemoryTier:
    """Insertion-ordered store holding at most ``capacity`` entries.

    Inserting a new key while full evicts the single oldest-inserted entry.
    Replacing an existing key keeps its original position, so reads never
    affect eviction order.
    """

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, entry: CacheEntry) -> str | None:
        """Store ``entry``; returns the evicted key, if any."""
        evicted: str | None = None
        with self._lock:
            if entry.key not in self._entries and len(self._entries) >= self._capacity:
                evicted, _ = self._entries.popitem(last=False)
            self._entries[entry.key] = entry
        return evicted

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def remove_expired(self, now_ms: int) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now_ms)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def entries(self) -> list[CacheEntry]:
        """Snapshot in insertion order."""
        with self._lock:
            return list(self._entries.values())

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries.keys())


__all__ = ["MemoryTier"]
