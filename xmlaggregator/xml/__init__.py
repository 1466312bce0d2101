"""XML validation, metadata and aggregation."""

from xmlaggregator.xml.aggregate import (
    AggregateOptions,
    CombinedDocument,
    CombinedStructure,
    aggregate,
    escape_attr,
)
from xmlaggregator.xml.validation import (
    ValidatedSource,
    ValidationReport,
    XmlBasicInfo,
    XmlMetadata,
    basic_info,
    clean_xml,
    extract_metadata,
    preview,
    quick_check,
    validate,
    validate_source,
)

__all__ = [
    "AggregateOptions",
    "CombinedDocument",
    "CombinedStructure",
    "ValidatedSource",
    "ValidationReport",
    "XmlBasicInfo",
    "XmlMetadata",
    "aggregate",
    "basic_info",
    "clean_xml",
    "escape_attr",
    "extract_metadata",
    "preview",
    "quick_check",
    "validate",
    "validate_source",
]
