"""Cache entries, keys and TTL policy."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

SOURCE_KEY_PREFIX = "source:"
AGGREGATE_CACHE_KEY = "aggregate:xml"

MIN_SOURCE_TTL_MS = 30_000
DEFAULT_AGGREGATE_TTL_MS = 60_000


class CacheEntry(BaseModel):
    """One cached payload with absolute expiry.

    An entry is logically absent once ``now_ms > expires_at_ms``, whichever
    tier holds it.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    payload: Any
    created_at_ms: int
    ttl_ms: int
    expires_at_ms: int

    @classmethod
    def create(cls, key: str, payload: Any, ttl_ms: int, now_ms: int) -> CacheEntry:
        return cls(
            key=key,
            payload=payload,
            created_at_ms=now_ms,
            ttl_ms=ttl_ms,
            expires_at_ms=now_ms + ttl_ms,
        )

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at_ms

    def expires_in_ms(self, now_ms: int) -> int:
        return max(0, self.expires_at_ms - now_ms)


def source_cache_key(source_id: str, *, bucket_s: int = 0, now_ms: int | None = None) -> str:
    """Key for a source's last payload.

    With ``bucket_s > 0`` the coarse time bucket ``floor(now / bucket)`` is
    appended, so a new bucket starts a fresh key.
    """
    key = f"{SOURCE_KEY_PREFIX}{source_id}"
    if bucket_s > 0:
        if now_ms is None:
            raise ValueError("now_ms is required when bucket_s > 0")
        key = f"{key}:{now_ms // (bucket_s * 1000)}"
    return key


def source_ttl_ms(interval_s: int, *, min_ttl_ms: int = MIN_SOURCE_TTL_MS) -> int:
    """Half the source's retrieval interval, never below ``min_ttl_ms``."""
    return max(min_ttl_ms, int(interval_s * 1000 * 0.5))


__all__ = [
    "AGGREGATE_CACHE_KEY",
    "DEFAULT_AGGREGATE_TTL_MS",
    "MIN_SOURCE_TTL_MS",
    "SOURCE_KEY_PREFIX",
    "CacheEntry",
    "source_cache_key",
    "source_ttl_ms",
]
