"""Shared test helpers: descriptors, mock HTTP routing and a recording sleep."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from xmlaggregator.fetch.outcomes import FetchSuccess
from xmlaggregator.sources.descriptor import SourceDescriptor

Handler = Callable[[httpx.Request], Any]


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_descriptor(source_id: str, **overrides: Any) -> SourceDescriptor:
    data: dict[str, Any] = {
        "id": source_id,
        "name": f"Source {source_id}",
        "url": f"https://{source_id}.example.test/feed.xml",
    }
    data.update(overrides)
    return SourceDescriptor(**data)


def xml_response(body: str, status_code: int = 200, content_type: str = "application/xml") -> httpx.Response:
    return httpx.Response(status_code, text=body, headers={"content-type": content_type})


def routing_handler(routes: dict[str, Handler]) -> Handler:
    """Dispatch by request host; unknown hosts answer 404."""

    async def _handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.host)
        if route is None:
            return httpx.Response(404, text="not found")
        result = route(request)
        if hasattr(result, "__await__"):
            result = await result
        return result

    return _handler


def make_success(source_id: str, body: str, **overrides: Any) -> FetchSuccess:
    data: dict[str, Any] = {
        "source_id": source_id,
        "source_name": f"Source {source_id}",
        "url": f"https://{source_id}.example.test/feed.xml",
        "body": body,
        "content_type": "application/xml",
        "http_status": 200,
        "response_time_ms": 5,
        "attempt": 1,
        "fetched_at": "2024-01-01T00:00:00.000Z",
    }
    data.update(overrides)
    return FetchSuccess(**data)
