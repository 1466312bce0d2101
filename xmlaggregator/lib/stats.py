"""Pipeline statistics.

One ``PipelineStatistics`` instance is owned by the aggregation service for the
process lifetime and handed by reference to the fetcher and the cache, so all
three report into the same counters. Increments and snapshots are atomic with
respect to each other.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field, fields
from typing import Literal

from xmlaggregator.lib.clock import utc_now_iso

StatsGroup = Literal["fetch", "validation", "runs", "cache"]


def _rate(part: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(part / total * 100, 1)


def _average(total: int, count: int) -> int:
    if count == 0:
        return 0
    return round(total / count)


@dataclass
class FetchCounters:
    requests: int = 0
    successes: int = 0
    failures: int = 0
    attempts: int = 0
    total_response_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = asdict(self)
        payload["average_response_ms"] = _average(self.total_response_ms, self.requests)
        payload["success_rate"] = _rate(self.successes, self.requests)
        return payload


@dataclass
class ValidationCounters:
    processed: int = 0
    well_formed: int = 0
    malformed: int = 0

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = asdict(self)
        payload["success_rate"] = _rate(self.well_formed, self.processed)
        return payload


@dataclass
class RunCounters:
    total: int = 0
    successes: int = 0
    warnings: int = 0
    failures: int = 0
    total_processing_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = asdict(self)
        payload["average_processing_ms"] = _average(self.total_processing_ms, self.total)
        payload["success_rate"] = _rate(self.successes, self.total)
        return payload


@dataclass
class CacheCounters:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    write_failures: int = 0

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = asdict(self)
        payload["hit_rate"] = _rate(self.hits, self.hits + self.misses)
        return payload


@dataclass
class _Counters:
    fetch: FetchCounters = field(default_factory=FetchCounters)
    validation: ValidationCounters = field(default_factory=ValidationCounters)
    runs: RunCounters = field(default_factory=RunCounters)
    cache: CacheCounters = field(default_factory=CacheCounters)


class PipelineStatistics:
    """Monotonic counters for fetches, validation, runs and cache traffic.

    Example:
        stats = PipelineStatistics()
        stats.record_fetch(success=True, response_ms=120, attempts=1)
        stats.snapshot()["fetch"]["success_rate"]  # 100.0
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters = _Counters()
        self._last_reset = utc_now_iso()

    def record_fetch(self, *, success: bool, response_ms: int, attempts: int) -> None:
        with self._lock:
            fetch = self._counters.fetch
            fetch.requests += 1
            fetch.attempts += attempts
            fetch.total_response_ms += max(0, response_ms)
            if success:
                fetch.successes += 1
            else:
                fetch.failures += 1

    def record_validation(self, *, well_formed: bool) -> None:
        with self._lock:
            validation = self._counters.validation
            validation.processed += 1
            if well_formed:
                validation.well_formed += 1
            else:
                validation.malformed += 1

    def record_run(self, *, status: str, processing_ms: int) -> None:
        with self._lock:
            runs = self._counters.runs
            runs.total += 1
            runs.total_processing_ms += max(0, processing_ms)
            if status == "success":
                runs.successes += 1
            elif status == "warning":
                runs.warnings += 1
            else:
                runs.failures += 1

    def record_cache(self, event: str, count: int = 1) -> None:
        """Increment one cache counter (hits, misses, sets, deletes, evictions, write_failures)."""
        with self._lock:
            cache = self._counters.cache
            if event not in {f.name for f in fields(cache)}:
                raise ValueError(f"Unknown cache event '{event}'")
            setattr(cache, event, getattr(cache, event) + count)

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "fetch": self._counters.fetch.to_dict(),
                "validation": self._counters.validation.to_dict(),
                "runs": self._counters.runs.to_dict(),
                "cache": self._counters.cache.to_dict(),
                "last_reset": self._last_reset,
            }

    def reset(self, group: StatsGroup | None = None) -> None:
        """Zero all counters, or a single group."""
        with self._lock:
            if group is None:
                self._counters = _Counters()
            elif group == "fetch":
                self._counters.fetch = FetchCounters()
            elif group == "validation":
                self._counters.validation = ValidationCounters()
            elif group == "runs":
                self._counters.runs = RunCounters()
            elif group == "cache":
                self._counters.cache = CacheCounters()
            else:
                raise ValueError(f"Unknown statistics group '{group}'")
            self._last_reset = utc_now_iso()


__all__ = ["CacheCounters", "FetchCounters", "PipelineStatistics", "RunCounters", "ValidationCounters"]
