"""Dependency injection container for xml-aggregator.

Architecture:
- settings, statistics, clock: Singletons shared by every component
- cache, fetcher: Singletons wired to the shared statistics
- aggregation_service: Factory, one per caller, over the same components

The source provider is an external collaborator. Supply it for runs either
through ``create_container(provider=...)`` or by overriding
``container.source_provider``.
"""

from __future__ import annotations

from dependency_injector import containers, providers

from xmlaggregator.cache.tiered import TieredCache
from xmlaggregator.config import Settings, load_settings
from xmlaggregator.fetch.fetcher import Fetcher
from xmlaggregator.lib.clock import SystemClock
from xmlaggregator.lib.stats import PipelineStatistics
from xmlaggregator.pipeline.service import AggregationService
from xmlaggregator.sources.provider import SourceProvider


class ApplicationContainer(containers.DeclarativeContainer):
    """Application-wide dependency injection container.

    Usage:
        container = create_container(provider=StaticSourceProvider(descriptors))
        service = container.aggregation_service()
        result = await service.run_aggregation()
        await container.fetcher().aclose()
    """

    settings = providers.Singleton(load_settings)

    statistics = providers.Singleton(PipelineStatistics)

    clock = providers.Singleton(SystemClock)

    source_provider = providers.Object(None)

    cache = providers.Singleton(
        TieredCache.from_settings,
        settings,
        statistics=statistics,
        clock=clock,
    )

    fetcher = providers.Singleton(
        Fetcher,
        settings=settings,
        statistics=statistics,
        provider=source_provider,
    )

    aggregation_service = providers.Factory(
        AggregationService,
        provider=source_provider,
        fetcher=fetcher,
        cache=cache,
        statistics=statistics,
    )


def create_container(
    *,
    provider: SourceProvider | None = None,
    settings: Settings | None = None,
) -> ApplicationContainer:
    """Create and configure the application container.

    Args:
        provider: Source provider for fetch and aggregation services.
        settings: Explicit settings; defaults to environment-derived settings.
    """
    container = ApplicationContainer()
    if settings is not None:
        container.settings.override(providers.Object(settings))
    if provider is not None:
        container.source_provider.override(providers.Object(provider))
    return container


__all__ = [
    "ApplicationContainer",
    "create_container",
]
