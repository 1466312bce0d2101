"""Source provider seam.

The pipeline never owns the configuration store. It asks a ``SourceProvider``
for the enabled descriptors at the start of each run and pushes a
``StatusNotification`` back after every finished retrieval.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from xmlaggregator.errors import ErrorKind
from xmlaggregator.sources.descriptor import SourceDescriptor, enabled_in_order


class StatusNotification(BaseModel):
    """Per-source status pushed after each attempt sequence."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    status: Literal["success", "error"]
    timestamp: str
    response_time_ms: int
    attempts: int
    content_length: int | None = None
    last_error: str | None = None
    error_kind: ErrorKind | None = None


@runtime_checkable
class SourceProvider(Protocol):
    """Supplies descriptors and receives per-source status.

    Example implementations:
    - StaticSourceProvider (in-memory, used by the CLI and tests)
    - A persisted configuration store behind an admin UI
    """

    async def enabled_sources(self) -> list[SourceDescriptor]:
        """Return enabled descriptors sorted by ``order``."""
        ...

    async def report_status(self, notification: StatusNotification) -> None:
        """Record the outcome of one retrieval.

        Implementations may raise; the fetcher logs the failure and carries on.
        """
        ...


class StaticSourceProvider:
    """In-memory provider over a fixed descriptor list."""

    def __init__(self, descriptors: Iterable[SourceDescriptor]) -> None:
        self._descriptors = list(descriptors)
        self._status: dict[str, StatusNotification] = {}
        self._lock = asyncio.Lock()

    @property
    def descriptors(self) -> list[SourceDescriptor]:
        return list(self._descriptors)

    async def enabled_sources(self) -> list[SourceDescriptor]:
        return enabled_in_order(self._descriptors)

    async def report_status(self, notification: StatusNotification) -> None:
        async with self._lock:
            self._status[notification.source_id] = notification

    def last_status(self, source_id: str) -> StatusNotification | None:
        return self._status.get(source_id)


__all__ = ["SourceProvider", "StaticSourceProvider", "StatusNotification"]
