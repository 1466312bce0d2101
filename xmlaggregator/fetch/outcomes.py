"""Fetch outcome models."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from xmlaggregator.errors import ErrorKind


class FetchSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    source_id: str
    source_name: str
    url: str
    body: str
    content_type: str
    http_status: int
    response_time_ms: int
    attempt: int
    fetched_at: str

    @property
    def content_length(self) -> int:
        return len(self.body)


class FetchFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    source_id: str
    source_name: str
    url: str
    error_kind: ErrorKind
    message: str
    attempts: int
    attempts_exhausted: bool
    response_time_ms: int
    failed_at: str


FetchOutcome = Annotated[Union[FetchSuccess, FetchFailure], Field(discriminator="kind")]


class FetchBatch(BaseModel):
    """Outcomes of one ``fetch_all`` call, in descriptor order."""

    timestamp: str
    outcomes: list[FetchOutcome]
    total: int
    successful: int
    failed: int
    statistics: dict[str, object] = Field(default_factory=dict)

    @property
    def successes(self) -> list[FetchSuccess]:
        return [o for o in self.outcomes if isinstance(o, FetchSuccess)]

    @property
    def failures(self) -> list[FetchFailure]:
        return [o for o in self.outcomes if isinstance(o, FetchFailure)]


class ProbeResult(BaseModel):
    """Single connectivity test against a URL; any HTTP status is accepted."""

    success: bool
    url: str
    http_status: int | None = None
    response_time_ms: int
    content_type: str | None = None
    content_length: int = 0
    is_xml: bool = False
    preview: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


__all__ = ["FetchBatch", "FetchFailure", "FetchOutcome", "FetchSuccess", "ProbeResult"]
