"""Aggregation pipeline: orchestration and result contract."""

from xmlaggregator.pipeline.models import (
    AggregationResult,
    ErrorResult,
    RunOptions,
    RunSummary,
    SourceError,
    SourceSummary,
    SuccessResult,
    WarningResult,
)
from xmlaggregator.pipeline.service import AggregationService, RunResult

__all__ = [
    "AggregationResult",
    "AggregationService",
    "ErrorResult",
    "RunOptions",
    "RunResult",
    "RunSummary",
    "SourceError",
    "SourceSummary",
    "SuccessResult",
    "WarningResult",
]
