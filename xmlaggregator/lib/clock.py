"""Clock abstractions so expiry and timing can run on simulated time."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now_ms(self) -> int:
        """Wall-clock milliseconds since the epoch."""
        ...


class SystemClock:
    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock:
    """Clock that only moves when told to.

    Example:
        clock = ManualClock(start_ms=0)
        cache = TieredCache(..., clock=clock)
        clock.advance(150)
    """

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def advance(self, delta_ms: int) -> None:
        self._now += delta_ms

    def set(self, now_ms: int) -> None:
        self._now = now_ms


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def elapsed_ms(start: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - start) * 1000)


__all__ = ["Clock", "ManualClock", "SystemClock", "elapsed_ms", "utc_now_iso"]
