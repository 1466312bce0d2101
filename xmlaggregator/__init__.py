"""xml-aggregator - fetch, validate, cache and combine remote XML documents.

Example:
    from xmlaggregator import RunOptions, SourceDescriptor, StaticSourceProvider, create_container

    provider = StaticSourceProvider([
        SourceDescriptor(id="feed", name="Feed", url="https://example.org/feed.xml"),
    ])
    container = create_container(provider=provider)
    result = await container.aggregation_service().run_aggregation(RunOptions(include="xml"))
    if result.status == "success":
        print(result.combined_xml)
"""

from xmlaggregator.container import ApplicationContainer, create_container
from xmlaggregator.errors import AggregatorError, ErrorKind
from xmlaggregator.pipeline import (
    AggregationService,
    ErrorResult,
    RunOptions,
    SuccessResult,
    WarningResult,
)
from xmlaggregator.sources import SourceDescriptor, SourceProvider, StaticSourceProvider
from xmlaggregator.version import __version__

__all__ = [
    "AggregationService",
    "AggregatorError",
    "ApplicationContainer",
    "ErrorKind",
    "ErrorResult",
    "RunOptions",
    "SourceDescriptor",
    "SourceProvider",
    "StaticSourceProvider",
    "SuccessResult",
    "WarningResult",
    "__version__",
    "create_container",
]
