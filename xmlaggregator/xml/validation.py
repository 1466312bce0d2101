"""XML validation and metadata extraction.

Validation runs in two tiers. ``quick_check`` is a cheap structural scan over
the raw text; only documents that pass it are handed to the full
``xml.etree.ElementTree`` parser.
"""

from __future__ import annotations

import re
import time
import xml.etree.ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field

from xmlaggregator.errors import ErrorKind, XmlValidationError
from xmlaggregator.fetch.outcomes import FetchSuccess
from xmlaggregator.lib.clock import elapsed_ms
from xmlaggregator.lib.log import get_logger

logger = get_logger(__name__)

_DECLARATION_RE = re.compile(r"\A\s*<\?xml\s[^>]*\?>")
_VERSION_RE = re.compile(r"""version=["']([^"']+)["']""")
_ENCODING_RE = re.compile(r"""encoding=["']([^"']+)["']""")
_ROOT_TAG_RE = re.compile(r"<([^/!?][^>\s]*)")
_ELEMENT_RE = re.compile(r"<[^/!?][^>]*>")
_NAMESPACE_RE = re.compile(r"""xmlns[^=]*=["'][^"']*["']""")
_ATTRIBUTE_RE = re.compile(r"<[^>]+\s+\w+\s*=")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_INTER_TAG_WS_RE = re.compile(r">\s+<")

DEFAULT_VERSION = "1.0"
DEFAULT_ENCODING = "utf-8"


class ValidationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    error: str | None = None
    error_kind: ErrorKind | None = None
    root_element: str | None = None


class Namespace(BaseModel):
    prefix: str
    uri: str


class XmlMetadata(BaseModel):
    size: int
    root_element: str | None = None
    declared_version: str = DEFAULT_VERSION
    declared_encoding: str = DEFAULT_ENCODING
    has_declaration: bool = False
    namespaces: list[Namespace] = Field(default_factory=list)
    approx_element_count: int = 0
    has_attributes: bool = False


class XmlBasicInfo(BaseModel):
    """Regex-only summary of a document; never parses."""

    size: int
    has_declaration: bool = False
    root_element: str | None = None
    encoding: str = DEFAULT_ENCODING
    version: str = DEFAULT_VERSION
    estimated_elements: int = 0
    has_namespaces: bool = False


class ValidatedSource(BaseModel):
    """A fetched document after validation.

    Sources that are not well-formed are excluded from aggregation but still
    reported in the run's error list.
    """

    model_config = ConfigDict(frozen=True)

    source: FetchSuccess
    is_well_formed: bool
    validation_error: str | None = None
    error_kind: ErrorKind | None = None
    root_element: str | None = None
    approx_element_count: int = 0
    metadata: XmlMetadata | None = None
    processing_time_ms: int = 0


def _root_tag(text: str) -> str | None:
    match = _ROOT_TAG_RE.search(text)
    if match is None:
        return None
    return match.group(1).rstrip("/") or None


def _declaration(raw: str) -> tuple[bool, str, str]:
    match = _DECLARATION_RE.search(raw)
    if match is None:
        return False, DEFAULT_VERSION, DEFAULT_ENCODING
    decl = match.group(0)
    version = _VERSION_RE.search(decl)
    encoding = _ENCODING_RE.search(decl)
    return (
        True,
        version.group(1) if version else DEFAULT_VERSION,
        encoding.group(1) if encoding else DEFAULT_ENCODING,
    )


def quick_check(raw: str | None) -> ValidationReport:
    """Structural scan without parsing.

    Checks, in order: non-empty, starts with ``<``, equal ``<``/``>`` counts,
    a root start tag, and a matching close tag for the root (or any
    self-closing tag in the document).
    """
    if not raw or not raw.strip():
        return ValidationReport(is_valid=False, error="Empty XML content", error_kind=ErrorKind.EMPTY_BODY)

    trimmed = raw.strip()
    if not trimmed.startswith("<"):
        return ValidationReport(
            is_valid=False,
            error="Does not start with XML declaration or tag",
            error_kind=ErrorKind.MALFORMED_XML,
        )

    if trimmed.count("<") != trimmed.count(">"):
        return ValidationReport(is_valid=False, error="Unbalanced XML tags", error_kind=ErrorKind.UNBALANCED_TAGS)

    root = _root_tag(trimmed)
    if root is None:
        return ValidationReport(is_valid=False, error="No root element found", error_kind=ErrorKind.MISSING_ROOT)

    if f"</{root}>" not in trimmed and "/>" not in trimmed:
        return ValidationReport(
            is_valid=False,
            error=f"Root element '{root}' not properly closed",
            error_kind=ErrorKind.UNBALANCED_TAGS,
        )

    return ValidationReport(is_valid=True, root_element=root)


def _parse(raw: str) -> ET.Element:
    try:
        return ET.fromstring(raw.strip())
    except (ET.ParseError, ValueError) as exc:
        raise XmlValidationError(f"Invalid XML: {exc}") from exc


def validate(raw: str | None) -> ValidationReport:
    """Quick check, then a full parse."""
    report = quick_check(raw)
    if not report.is_valid:
        return report
    try:
        _parse(raw or "")
    except XmlValidationError as exc:
        return ValidationReport(is_valid=False, error=str(exc), error_kind=exc.kind)
    return report


def _namespaces(raw: str) -> list[Namespace]:
    found: list[Namespace] = []
    for decl in _NAMESPACE_RE.findall(raw):
        name, _, value = decl.partition("=")
        prefix = name.strip()
        prefix = prefix[len("xmlns:"):] if prefix.startswith("xmlns:") else "default"
        found.append(Namespace(prefix=prefix, uri=value.strip("\"'")))
    return found


def extract_metadata(raw: str, *, root: ET.Element | None = None) -> XmlMetadata:
    """Describe a document.

    The element count comes from the parsed tree when the document parses,
    otherwise from a regex scan of start tags.
    """
    has_declaration, version, encoding = _declaration(raw)
    if root is None:
        try:
            root = _parse(raw)
        except XmlValidationError:
            root = None
    element_count = sum(1 for _ in root.iter()) if root is not None else len(_ELEMENT_RE.findall(raw))
    return XmlMetadata(
        size=len(raw),
        root_element=_root_tag(_DECLARATION_RE.sub("", raw, count=1)),
        declared_version=version,
        declared_encoding=encoding,
        has_declaration=has_declaration,
        namespaces=_namespaces(raw),
        approx_element_count=element_count,
        has_attributes=bool(_ATTRIBUTE_RE.search(raw)),
    )


def validate_source(success: FetchSuccess) -> ValidatedSource:
    """Run both validation tiers and collect metadata for one fetched document."""
    start = time.perf_counter()
    raw = success.body
    report = quick_check(raw)
    root: ET.Element | None = None
    if report.is_valid:
        try:
            root = _parse(raw)
        except XmlValidationError as exc:
            report = ValidationReport(is_valid=False, error=str(exc), error_kind=exc.kind)

    if not report.is_valid:
        logger.info("source_invalid", source=success.source_id, error_kind=str(report.error_kind), error=report.error)
        return ValidatedSource(
            source=success,
            is_well_formed=False,
            validation_error=report.error,
            error_kind=report.error_kind,
            approx_element_count=len(_ELEMENT_RE.findall(raw or "")),
            processing_time_ms=elapsed_ms(start),
        )

    metadata = extract_metadata(raw, root=root)
    return ValidatedSource(
        source=success,
        is_well_formed=True,
        root_element=metadata.root_element,
        approx_element_count=metadata.approx_element_count,
        metadata=metadata,
        processing_time_ms=elapsed_ms(start),
    )


def basic_info(raw: str) -> XmlBasicInfo:
    has_declaration, version, encoding = _declaration(raw)
    return XmlBasicInfo(
        size=len(raw),
        has_declaration=has_declaration,
        root_element=_root_tag(raw),
        encoding=encoding,
        version=version,
        estimated_elements=len(_ELEMENT_RE.findall(raw)),
        has_namespaces=bool(re.search(r"xmlns[^=]*=", raw)),
    )


def clean_xml(raw: str) -> str:
    """Drop control characters, normalise newlines and collapse whitespace between tags."""
    cleaned = _CONTROL_CHARS_RE.sub("", raw)
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    return _INTER_TAG_WS_RE.sub("><", cleaned).strip()


def preview(raw: str | None, max_length: int = 1000) -> str:
    if not raw:
        return "No XML data"
    formatted = raw.replace("><", ">\n<").strip()
    if len(formatted) > max_length:
        return formatted[:max_length] + "\n... (truncated)"
    return formatted


__all__ = [
    "Namespace",
    "ValidatedSource",
    "ValidationReport",
    "XmlBasicInfo",
    "XmlMetadata",
    "basic_info",
    "clean_xml",
    "extract_metadata",
    "preview",
    "quick_check",
    "validate",
    "validate_source",
]
