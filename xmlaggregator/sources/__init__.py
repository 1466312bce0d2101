"""Source descriptors and the provider seam."""

from xmlaggregator.sources.descriptor import (
    SourceDescriptor,
    enabled_in_order,
    load_descriptors,
    parse_descriptors,
)
from xmlaggregator.sources.provider import SourceProvider, StaticSourceProvider, StatusNotification

__all__ = [
    "SourceDescriptor",
    "SourceProvider",
    "StaticSourceProvider",
    "StatusNotification",
    "enabled_in_order",
    "load_descriptors",
    "parse_descriptors",
]
