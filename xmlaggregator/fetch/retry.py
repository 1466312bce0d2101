"""Retry policy for source retrieval.

Attempt n failing is followed by a pause of ``min(base * 2^(n-1), cap)``
before attempt n+1; nothing follows the last attempt. Every exception is
retried. The state machine is tenacity's ``AsyncRetrying`` with an injectable
``sleep`` so tests can run on virtual time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from xmlaggregator.lib.log import get_logger

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


def backoff_delay_ms(attempt: int, base_ms: int, cap_ms: int) -> int:
    """Pause after failed ``attempt`` (1-based), in milliseconds."""
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    return min(base_ms * 2 ** (attempt - 1), cap_ms)


def backoff_schedule(retries: int, base_ms: int, cap_ms: int) -> list[int]:
    """All pauses for a sequence of ``retries`` attempts (one fewer than attempts)."""
    return [backoff_delay_ms(n, base_ms, cap_ms) for n in range(1, max(retries, 1))]


def _log_before_sleep(source_id: str) -> Callable[[RetryCallState], None]:
    def _hook(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait_s = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.info(
            "fetch_attempt_failed",
            source=source_id,
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
            wait_ms=int(wait_s * 1000),
        )

    return _hook


def build_retrying(
    *,
    retries: int,
    base_ms: int,
    cap_ms: int,
    source_id: str,
    sleep: SleepFn = asyncio.sleep,
) -> AsyncRetrying:
    """Build the attempt loop for one source.

    Example:
        async for attempt in build_retrying(retries=3, base_ms=1000, cap_ms=5000, source_id="a"):
            with attempt:
                await do_request()
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(retries, 1)),
        wait=wait_exponential(multiplier=base_ms / 1000, max=cap_ms / 1000),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_before_sleep(source_id),
        sleep=sleep,
        reraise=True,
    )


__all__ = ["SleepFn", "backoff_delay_ms", "backoff_schedule", "build_retrying"]
