"""Aggregation service: fetch, validate, cache and combine every enabled source.

Run stages::

    no_sources ──(none enabled)──────────────▶ warning
        │
    fetching ───(every fetch failed)─────────▶ error 503
        │
    validating ─(no well-formed document)────▶ error 422
        │
    aggregating ─(build failure)─────────────▶ error 500
        │
    complete ───────────────────────────────▶ success

An unexpected exception yields ``error 500`` at whichever stage was reached.
Per-source fetch and validation problems never fail the run on their own;
they are listed in ``errors``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Union

import aiosqlite
from pydantic import ValidationError

from xmlaggregator.cache.entry import AGGREGATE_CACHE_KEY
from xmlaggregator.cache.tiered import TieredCache
from xmlaggregator.errors import AggregationError, CacheError, ErrorKind
from xmlaggregator.fetch.fetcher import Fetcher
from xmlaggregator.fetch.outcomes import FetchFailure, FetchSuccess
from xmlaggregator.lib.clock import elapsed_ms, utc_now_iso
from xmlaggregator.lib.log import get_logger, run_context
from xmlaggregator.lib.stats import PipelineStatistics, StatsGroup
from xmlaggregator.pipeline.models import (
    ErrorResult,
    RunOptions,
    RunSummary,
    SourceError,
    SourceSummary,
    Stage,
    SuccessResult,
    WarningResult,
)
from xmlaggregator.sources.descriptor import SourceDescriptor
from xmlaggregator.sources.provider import SourceProvider
from xmlaggregator.xml.aggregate import AggregateOptions, aggregate
from xmlaggregator.xml.validation import ValidatedSource, preview, validate_source

logger = get_logger(__name__)

RunResult = Union[SuccessResult, WarningResult, ErrorResult]

_CACHE_FAILURES = (CacheError, aiosqlite.Error, OSError)

SUMMARY_PREVIEW_CHARS = 200


def _fetch_error(failure: FetchFailure) -> SourceError:
    return SourceError(
        id=failure.source_id,
        name=failure.source_name,
        url=failure.url,
        stage="fetching",
        error_kind=failure.error_kind,
        message=failure.message,
    )


def _validation_error(item: ValidatedSource) -> SourceError:
    return SourceError(
        id=item.source.source_id,
        name=item.source.source_name,
        url=item.source.url,
        stage="validating",
        error_kind=item.error_kind or ErrorKind.MALFORMED_XML,
        message=item.validation_error or "Invalid XML",
    )


def _summary_of(item: ValidatedSource) -> SourceSummary:
    return SourceSummary(
        id=item.source.source_id,
        name=item.source.source_name,
        url=item.source.url,
        fetched_at=item.source.fetched_at,
        processing_time_ms=item.processing_time_ms,
        root_element=item.root_element,
        element_count=item.approx_element_count,
        content_length=item.source.content_length,
        preview=preview(item.source.body, SUMMARY_PREVIEW_CHARS),
    )


@dataclass
class _RunState:
    start: float
    stage: Stage = "no_sources"


def _dominant_kind(failures: list[FetchFailure]) -> ErrorKind:
    kinds = {f.error_kind for f in failures}
    if len(kinds) == 1:
        return kinds.pop()
    return ErrorKind.UNKNOWN


class AggregationService:
    """Coordinates one aggregation run end to end.

    The service owns the ``PipelineStatistics`` instance; the fetcher and the
    cache it is given should report into the same one.

    Example:
        service = AggregationService(provider, fetcher, cache=cache, statistics=stats)
        result = await service.run_aggregation(RunOptions(include="xml"))
        if result.status == "success":
            print(result.combined_xml)
    """

    def __init__(
        self,
        provider: SourceProvider,
        fetcher: Fetcher,
        *,
        cache: TieredCache | None = None,
        statistics: PipelineStatistics | None = None,
    ) -> None:
        self._provider = provider
        self._fetcher = fetcher
        self._cache = cache
        self._statistics = statistics or fetcher.statistics
        self._last_outcomes: dict[str, dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Runs

    async def run_aggregation(self, options: RunOptions | None = None) -> RunResult:
        """Run every stage once; never raises."""
        with run_context():
            return await self._run(options or RunOptions())

    async def _run(self, options: RunOptions) -> RunResult:
        state = _RunState(start=time.perf_counter())
        start = state.start
        result: RunResult | None = None
        try:
            if options.use_cache:
                result = await self._cached_result(options, start)
                if result is not None:
                    return result

            descriptors = await self._provider.enabled_sources()
            if not descriptors:
                logger.warning("aggregation_no_sources")
                result = self._warning("No enabled sources configured", start)
                return result

            state.stage = "fetching"
            result = await self._run_stages(descriptors, options, state)
            return result
        except Exception as exc:
            logger.exception("aggregation_crashed", stage=state.stage, error=str(exc))
            result = self._error(
                state.stage,
                f"Internal error during aggregation: {exc}",
                500,
                ErrorKind.UNKNOWN,
                start=start,
            )
            return result
        finally:
            status = result.status if result is not None else "error"
            self._statistics.record_run(status=status, processing_ms=elapsed_ms(start))
            logger.info("aggregation_finished", status=status, stage=result.stage if result else state.stage, elapsed_ms=elapsed_ms(start))

    async def _run_stages(self, descriptors: list[SourceDescriptor], options: RunOptions, state: _RunState) -> RunResult:
        start = state.start
        by_id = {d.id: d for d in descriptors}
        summary = RunSummary(configured=len(descriptors))

        batch = await self._fetcher.fetch_all(
            descriptors,
            "sequential" if options.sequential else "parallel",
            timeout_ms=options.timeout_override_ms,
        )
        self._remember(batch.outcomes)
        successes = batch.successes
        errors = [_fetch_error(f) for f in batch.failures]
        summary.fetched = len(successes)

        for success in successes:
            await self._cache_source(success, by_id[success.source_id])

        if not successes:
            return self._error(
                "fetching",
                "Could not retrieve any source",
                503,
                _dominant_kind(batch.failures),
                start=start,
                errors=errors,
                summary=summary,
            )

        state.stage = "validating"
        validated = [validate_source(s) for s in successes]
        for item in validated:
            self._statistics.record_validation(well_formed=item.is_well_formed)
        errors.extend(_validation_error(v) for v in validated if not v.is_well_formed)
        summary.valid = sum(1 for v in validated if v.is_well_formed)
        if summary.valid == 0:
            return self._error(
                "validating",
                "No well-formed XML sources",
                422,
                ErrorKind.NO_VALID_SOURCES,
                start=start,
                errors=errors,
                summary=summary,
            )

        state.stage = "aggregating"
        try:
            document = aggregate(
                validated,
                AggregateOptions(include_xml=options.wants_xml, include_structure=options.wants_structure),
            )
        except AggregationError as exc:
            return self._error(
                "aggregating",
                str(exc),
                500,
                exc.kind,
                start=start,
                errors=errors,
                summary=summary,
            )

        result = SuccessResult(
            timestamp=document.timestamp,
            elapsed_ms=elapsed_ms(start),
            combined_xml=document.xml,
            combined_structure=document.structure,
            source_summaries=[_summary_of(v) for v in validated if v.is_well_formed] if options.wants_metadata else [],
            errors=errors,
            summary=summary,
            statistics=self._statistics.snapshot(),
        )
        if options.include == "all":
            await self._cache_aggregate(result)
        return result

    def _warning(self, message: str, start: float) -> WarningResult:
        return WarningResult(
            timestamp=utc_now_iso(),
            elapsed_ms=elapsed_ms(start),
            message=message,
            statistics=self._statistics.snapshot(),
        )

    def _error(
        self,
        stage: Stage,
        message: str,
        http_status: int,
        kind: ErrorKind,
        *,
        start: float,
        errors: list[SourceError] | None = None,
        summary: RunSummary | None = None,
    ) -> ErrorResult:
        logger.warning("aggregation_failed", stage=stage, http_status=http_status, error_kind=str(kind), message=message)
        return ErrorResult(
            timestamp=utc_now_iso(),
            elapsed_ms=elapsed_ms(start),
            stage=stage,
            message=message,
            http_status=http_status,
            error_kind=kind,
            errors=errors or [],
            summary=summary or RunSummary(),
            statistics=self._statistics.snapshot(),
        )

    async def refresh(self, options: RunOptions | None = None) -> RunResult:
        """Drop the cached aggregate and run again."""
        if self._cache is not None:
            try:
                await self._cache.drop_aggregate()
            except _CACHE_FAILURES as exc:
                logger.warning("cache_drop_failed", error=str(exc))
        options = (options or RunOptions()).model_copy(update={"use_cache": False})
        return await self.run_aggregation(options)

    # ------------------------------------------------------------------
    # Cache plumbing; failures are logged and never fail a run

    async def _cache_source(self, success: FetchSuccess, descriptor: SourceDescriptor) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set_source_payload(success.source_id, success.model_dump(mode="json"), descriptor.interval_s)
        except _CACHE_FAILURES as exc:
            logger.warning("cache_source_write_failed", source=success.source_id, error=str(exc))

    async def _cache_aggregate(self, result: SuccessResult) -> None:
        if self._cache is None:
            return
        payload = result.model_dump(mode="json", exclude={"statistics", "cached"})
        try:
            await self._cache.set_aggregate(payload)
        except _CACHE_FAILURES as exc:
            logger.warning("cache_aggregate_write_failed", error=str(exc))

    async def _cached_result(self, options: RunOptions, start: float) -> SuccessResult | None:
        if self._cache is None:
            return None
        try:
            payload = await self._cache.get_aggregate()
        except _CACHE_FAILURES as exc:
            logger.warning("cache_aggregate_read_failed", error=str(exc))
            return None
        if payload is None:
            return None
        try:
            cached = SuccessResult.model_validate(payload)
        except ValidationError as exc:
            await self._purge_record(self._cache, AGGREGATE_CACHE_KEY, exc)
            return None
        logger.info("aggregation_served_from_cache", generated=cached.timestamp)
        return cached.model_copy(
            update={
                "elapsed_ms": elapsed_ms(start),
                "cached": True,
                "combined_xml": cached.combined_xml if options.wants_xml else None,
                "combined_structure": cached.combined_structure if options.wants_structure else None,
                "source_summaries": cached.source_summaries if options.wants_metadata else [],
                "statistics": self._statistics.snapshot(),
            }
        )

    async def cached_source(self, source_id: str) -> FetchSuccess | None:
        """Last cached successful fetch for ``source_id``, if still live."""
        if self._cache is None:
            return None
        payload = await self._cache.get_source_payload(source_id)
        if payload is None:
            return None
        try:
            return FetchSuccess.model_validate(payload)
        except ValidationError as exc:
            await self._purge_record(self._cache, self._cache.source_key(source_id), exc)
            return None

    @staticmethod
    async def _purge_record(cache: TieredCache, key: str, exc: ValidationError) -> None:
        """Drop a cached record whose payload no longer matches its model."""
        logger.warning("cache_record_corrupted", key=key, errors=exc.error_count())
        try:
            await cache.delete(key)
        except _CACHE_FAILURES as delete_exc:
            logger.warning("cache_delete_failed", key=key, error=str(delete_exc))

    # ------------------------------------------------------------------
    # Introspection

    def _remember(self, outcomes: list[FetchSuccess | FetchFailure]) -> None:
        for outcome in outcomes:
            if isinstance(outcome, FetchSuccess):
                self._last_outcomes[outcome.source_id] = {"last_status": "success", "last_fetch": outcome.fetched_at}
            elif outcome.error_kind is not ErrorKind.ALREADY_IN_FLIGHT:
                self._last_outcomes[outcome.source_id] = {
                    "last_status": "error",
                    "last_fetch": outcome.failed_at,
                    "last_error": outcome.message,
                }

    async def sources_info(self) -> dict[str, Any]:
        descriptors = await self._provider.enabled_sources()
        return {
            "enabled": len(descriptors),
            "sources": [
                {
                    "id": d.id,
                    "name": d.name,
                    "url": d.url,
                    "order": d.order,
                    "interval_s": d.interval_s,
                    "last_status": "unknown",
                    **self._last_outcomes.get(d.id, {}),
                }
                for d in descriptors
            ],
        }

    def statistics(self) -> dict[str, object]:
        return self._statistics.snapshot()

    def reset_statistics(self, group: StatsGroup | None = None) -> None:
        self._statistics.reset(group)
        logger.info("statistics_reset", group=group or "all")


__all__ = ["AggregationService", "RunResult"]
