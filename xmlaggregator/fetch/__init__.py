"""Source retrieval: HTTP fetcher, retry policy and outcome models."""

from xmlaggregator.fetch.classify import classify_exception
from xmlaggregator.fetch.fetcher import Fetcher, FetchMode, build_http_client
from xmlaggregator.fetch.outcomes import FetchBatch, FetchFailure, FetchOutcome, FetchSuccess, ProbeResult
from xmlaggregator.fetch.retry import backoff_delay_ms, backoff_schedule, build_retrying

__all__ = [
    "FetchBatch",
    "FetchFailure",
    "FetchMode",
    "FetchOutcome",
    "FetchSuccess",
    "Fetcher",
    "ProbeResult",
    "backoff_delay_ms",
    "backoff_schedule",
    "build_http_client",
    "build_retrying",
    "classify_exception",
]
