"""Concurrent retrieval of source documents with retry and in-flight dedup."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Sequence
from typing import Any, Literal

import httpx

from xmlaggregator.config import Settings
from xmlaggregator.errors import ConcurrencyError, ErrorKind, RemoteStatusError, TransportError
from xmlaggregator.fetch.classify import classify_exception, describe_exception
from xmlaggregator.fetch.outcomes import FetchBatch, FetchFailure, FetchOutcome, FetchSuccess, ProbeResult
from xmlaggregator.fetch.retry import SleepFn, build_retrying
from xmlaggregator.lib.clock import elapsed_ms, utc_now_iso
from xmlaggregator.lib.log import get_logger
from xmlaggregator.lib.stats import PipelineStatistics
from xmlaggregator.sources.descriptor import SourceDescriptor
from xmlaggregator.sources.provider import SourceProvider, StatusNotification

logger = get_logger(__name__)

FetchMode = Literal["parallel", "sequential"]

PREVIEW_LENGTH = 200


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client: redirects followed up to ``settings.max_redirects``."""
    return httpx.AsyncClient(follow_redirects=True, max_redirects=settings.max_redirects)


class Fetcher:
    """Retrieves source documents.

    At most one retrieval per source id is outstanding at any time; a second
    concurrent request for the same id fails fast with ``already_in_flight``
    rather than joining the first. Each retrieval runs up to
    ``descriptor.retries`` attempts, each bounded by the per-attempt timeout.

    Example:
        async with Fetcher(settings=settings, statistics=stats) as fetcher:
            batch = await fetcher.fetch_all(descriptors)
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        statistics: PipelineStatistics | None = None,
        provider: SourceProvider | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._settings = settings or Settings()
        self._statistics = statistics or PipelineStatistics()
        self._provider = provider
        self._owns_client = client is None
        self._client = client or build_http_client(self._settings)
        self._sleep = sleep
        self._in_flight: dict[str, str] = {}
        self._registry_lock = threading.Lock()

    @property
    def statistics(self) -> PipelineStatistics:
        return self._statistics

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # In-flight registry

    def _claim(self, source_id: str) -> None:
        with self._registry_lock:
            if source_id in self._in_flight:
                raise ConcurrencyError("Request already in progress")
            self._in_flight[source_id] = utc_now_iso()

    def _release(self, source_id: str) -> None:
        with self._registry_lock:
            self._in_flight.pop(source_id, None)

    def active_requests(self) -> list[dict[str, str]]:
        """Retrievals currently outstanding, oldest first."""
        with self._registry_lock:
            return [{"source_id": sid, "started_at": started} for sid, started in self._in_flight.items()]

    # ------------------------------------------------------------------
    # Retrieval

    def _request_headers(self, descriptor: SourceDescriptor) -> dict[str, str]:
        headers = {
            "User-Agent": self._settings.user_agent,
            "Accept": self._settings.accept,
            "Cache-Control": "no-cache",
        }
        headers.update(descriptor.headers)
        return headers

    async def _attempt(self, descriptor: SourceDescriptor, timeout_ms: int) -> httpx.Response:
        timeout_s = timeout_ms / 1000
        try:
            response = await asyncio.wait_for(
                self._client.get(
                    descriptor.url,
                    headers=self._request_headers(descriptor),
                    timeout=timeout_s,
                    follow_redirects=True,
                ),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"No response within {timeout_ms} ms", kind=ErrorKind.TIMEOUT) from exc
        except httpx.TransportError as exc:
            raise TransportError(describe_exception(exc), kind=classify_exception(exc)) from exc
        if not 200 <= response.status_code < 300:
            raise RemoteStatusError(response.status_code, f"HTTP {response.status_code} from {descriptor.url}")
        return response

    async def fetch_one(self, descriptor: SourceDescriptor, *, timeout_ms: int | None = None) -> FetchOutcome:
        """Retrieve one source, retrying on any failure.

        Args:
            descriptor: Source to retrieve.
            timeout_ms: Per-attempt timeout overriding ``descriptor.timeout_ms``.

        Returns:
            ``FetchSuccess`` for a 2xx response, otherwise ``FetchFailure``.
        """
        try:
            self._claim(descriptor.id)
        except ConcurrencyError as exc:
            logger.info("fetch_already_in_flight", source=descriptor.id)
            return FetchFailure(
                source_id=descriptor.id,
                source_name=descriptor.name,
                url=descriptor.url,
                error_kind=exc.kind,
                message=str(exc),
                attempts=0,
                attempts_exhausted=False,
                response_time_ms=0,
                failed_at=utc_now_iso(),
            )

        try:
            outcome = await self._fetch_with_retry(descriptor, timeout_ms or descriptor.timeout_ms)
        finally:
            self._release(descriptor.id)

        self._statistics.record_fetch(
            success=isinstance(outcome, FetchSuccess),
            response_ms=outcome.response_time_ms,
            attempts=outcome.attempt if isinstance(outcome, FetchSuccess) else outcome.attempts,
        )
        await self._notify(outcome)
        return outcome

    async def _fetch_with_retry(self, descriptor: SourceDescriptor, timeout_ms: int) -> FetchOutcome:
        start = time.perf_counter()
        attempt_number = 0
        logger.debug("fetch_started", source=descriptor.id, url=descriptor.url, timeout_ms=timeout_ms)

        retrying = build_retrying(
            retries=descriptor.retries,
            base_ms=self._settings.retry_base_ms,
            cap_ms=self._settings.retry_cap_ms,
            source_id=descriptor.id,
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    response = await self._attempt(descriptor, timeout_ms)
        except Exception as exc:
            response_ms = elapsed_ms(start)
            kind = classify_exception(exc)
            message = describe_exception(exc)
            logger.warning(
                "fetch_failed",
                source=descriptor.id,
                attempts=attempt_number,
                error_kind=str(kind),
                error=message,
            )
            return FetchFailure(
                source_id=descriptor.id,
                source_name=descriptor.name,
                url=descriptor.url,
                error_kind=kind,
                message=message,
                attempts=attempt_number,
                attempts_exhausted=attempt_number >= descriptor.retries,
                response_time_ms=response_ms,
                failed_at=utc_now_iso(),
            )

        response_ms = elapsed_ms(start)
        body = response.text
        logger.info(
            "fetch_succeeded",
            source=descriptor.id,
            attempt=attempt_number,
            response_ms=response_ms,
            content_length=len(body),
        )
        return FetchSuccess(
            source_id=descriptor.id,
            source_name=descriptor.name,
            url=descriptor.url,
            body=body,
            content_type=response.headers.get("content-type", "unknown"),
            http_status=response.status_code,
            response_time_ms=response_ms,
            attempt=attempt_number,
            fetched_at=utc_now_iso(),
        )

    async def _notify(self, outcome: FetchOutcome) -> None:
        if self._provider is None:
            return
        if isinstance(outcome, FetchSuccess):
            notification = StatusNotification(
                source_id=outcome.source_id,
                status="success",
                timestamp=outcome.fetched_at,
                response_time_ms=outcome.response_time_ms,
                attempts=outcome.attempt,
                content_length=outcome.content_length,
            )
        else:
            notification = StatusNotification(
                source_id=outcome.source_id,
                status="error",
                timestamp=outcome.failed_at,
                response_time_ms=outcome.response_time_ms,
                attempts=outcome.attempts,
                last_error=outcome.message,
                error_kind=outcome.error_kind,
            )
        try:
            await self._provider.report_status(notification)
        except Exception as exc:
            logger.warning("status_report_failed", source=outcome.source_id, error=str(exc))

    async def _fetch_isolated(self, descriptor: SourceDescriptor, timeout_ms: int | None) -> FetchOutcome:
        try:
            return await self.fetch_one(descriptor, timeout_ms=timeout_ms)
        except Exception as exc:
            logger.error("fetch_crashed", source=descriptor.id, error=str(exc))
            return FetchFailure(
                source_id=descriptor.id,
                source_name=descriptor.name,
                url=descriptor.url,
                error_kind=ErrorKind.UNKNOWN,
                message=describe_exception(exc),
                attempts=0,
                attempts_exhausted=False,
                response_time_ms=0,
                failed_at=utc_now_iso(),
            )

    async def fetch_all(
        self,
        descriptors: Sequence[SourceDescriptor],
        mode: FetchMode = "parallel",
        *,
        timeout_ms: int | None = None,
    ) -> FetchBatch:
        """Retrieve every descriptor; ``outcomes[i]`` belongs to ``descriptors[i]``."""
        if mode == "sequential":
            outcomes: list[FetchOutcome] = []
            for index, descriptor in enumerate(descriptors):
                if index:
                    await self._sleep(self._settings.sequential_pause_ms / 1000)
                outcomes.append(await self._fetch_isolated(descriptor, timeout_ms))
        elif mode == "parallel":
            outcomes = list(await asyncio.gather(*(self._fetch_isolated(d, timeout_ms) for d in descriptors)))
        else:
            raise ValueError(f"Unknown fetch mode '{mode}'")

        successful = sum(1 for o in outcomes if isinstance(o, FetchSuccess))
        logger.info("fetch_batch_complete", mode=mode, total=len(outcomes), successful=successful)
        return FetchBatch(
            timestamp=utc_now_iso(),
            outcomes=outcomes,
            total=len(outcomes),
            successful=successful,
            failed=len(outcomes) - successful,
            statistics=self._statistics.snapshot(),
        )

    async def probe(
        self,
        url: str,
        *,
        timeout_ms: int = 5000,
        headers: dict[str, str] | None = None,
    ) -> ProbeResult:
        """One connectivity test; any HTTP status counts as reachable."""
        start = time.perf_counter()
        request_headers = {"User-Agent": self._settings.user_agent, **(headers or {})}
        try:
            response = await asyncio.wait_for(
                self._client.get(url, headers=request_headers, timeout=timeout_ms / 1000, follow_redirects=True),
                timeout=timeout_ms / 1000,
            )
        except Exception as exc:
            return ProbeResult(
                success=False,
                url=url,
                response_time_ms=elapsed_ms(start),
                error=describe_exception(exc),
                error_kind=classify_exception(exc),
            )

        body = response.text
        content_type = response.headers.get("content-type", "unknown")
        preview = body[:PREVIEW_LENGTH] + ("..." if len(body) > PREVIEW_LENGTH else "")
        return ProbeResult(
            success=True,
            url=url,
            http_status=response.status_code,
            response_time_ms=elapsed_ms(start),
            content_type=content_type,
            content_length=len(body),
            is_xml="xml" in content_type.lower(),
            preview=preview,
        )


__all__ = ["FetchMode", "Fetcher", "build_http_client"]
