"""Run options and result contract for the aggregation pipeline."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from xmlaggregator.errors import ErrorKind
from xmlaggregator.xml.aggregate import CombinedStructure

Include = Literal["xml", "structure", "metadata", "all"]
Stage = Literal["no_sources", "fetching", "validating", "aggregating", "complete"]


class RunOptions(BaseModel):
    sequential: bool = False
    timeout_override_ms: int | None = Field(default=None, ge=1)
    include: Include = "all"
    use_cache: bool = False

    @property
    def wants_xml(self) -> bool:
        return self.include in ("xml", "all")

    @property
    def wants_structure(self) -> bool:
        return self.include in ("structure", "all")

    @property
    def wants_metadata(self) -> bool:
        return self.include in ("metadata", "all")


class SourceSummary(BaseModel):
    id: str
    name: str
    url: str
    fetched_at: str
    processing_time_ms: int
    root_element: str | None = None
    element_count: int = 0
    content_length: int = 0
    preview: str = ""


class SourceError(BaseModel):
    id: str
    name: str
    url: str
    stage: Stage
    error_kind: ErrorKind
    message: str


class RunSummary(BaseModel):
    configured: int = 0
    fetched: int = 0
    valid: int = 0


class _ResultBase(BaseModel):
    timestamp: str
    elapsed_ms: int
    summary: RunSummary = Field(default_factory=RunSummary)
    statistics: dict[str, Any] = Field(default_factory=dict)


class SuccessResult(_ResultBase):
    status: Literal["success"] = "success"
    stage: Literal["complete"] = "complete"
    combined_xml: str | None = None
    combined_structure: CombinedStructure | None = None
    source_summaries: list[SourceSummary] = Field(default_factory=list)
    errors: list[SourceError] = Field(default_factory=list)
    cached: bool = False


class WarningResult(_ResultBase):
    status: Literal["warning"] = "warning"
    stage: Literal["no_sources"] = "no_sources"
    message: str
    combined_xml: None = None


class ErrorResult(_ResultBase):
    status: Literal["error"] = "error"
    stage: Stage
    message: str
    http_status: int
    error_kind: ErrorKind
    errors: list[SourceError] = Field(default_factory=list)
    source_summaries: list[SourceSummary] = Field(default_factory=list)


AggregationResult = Annotated[Union[SuccessResult, WarningResult, ErrorResult], Field(discriminator="status")]

__all__ = [
    "AggregationResult",
    "ErrorResult",
    "Include",
    "RunOptions",
    "RunSummary",
    "SourceError",
    "SourceSummary",
    "Stage",
    "SuccessResult",
    "WarningResult",
]
