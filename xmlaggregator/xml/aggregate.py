"""Combine validated sources into one document.

Sources are wrapped, not merged: each well-formed document is embedded inside
its own ``<source>`` element with only the XML declaration and DOCTYPE
removed, so the original content survives unchanged. References to entities
the DOCTYPE declared are left unexpanded. Attribute values are escaped.

Layout::

    <?xml version="1.0" encoding="UTF-8"?>
    <xml-aggregator version="1.0" timestamp="..." sources="N">
      <metadata>
        <generated>...</generated>
        <totalSources>N</totalSources>
        <generator>XML-Aggregator</generator>
        <version>1.0</version>
        <sources>
          <source id="..." name="..." />
        </sources>
      </metadata>
      <source id="..." name="..." url="..." timestamp="..." status="success" content-type="..." content-length="...">
    ORIGINAL CONTENT
      </source>
    </xml-aggregator>
"""

from __future__ import annotations

import html
import re
from collections.abc import Sequence

from pydantic import BaseModel, Field

from xmlaggregator.errors import AggregationError, ErrorKind
from xmlaggregator.lib.clock import utc_now_iso
from xmlaggregator.lib.log import get_logger
from xmlaggregator.xml.validation import ValidatedSource

logger = get_logger(__name__)

FORMAT_VERSION = "1.0"
GENERATOR = "XML-Aggregator"
ROOT_ELEMENT = "xml-aggregator"

_DECLARATION_RE = re.compile(r"\A\s*<\?xml\s[^>]*\?>\s*")
_DOCTYPE_RE = re.compile(r"<!DOCTYPE\s[^\[>]*(?:\[.*?\]\s*)?>\s*", re.DOTALL)
_FIRST_ELEMENT_RE = re.compile(r"<[^!?/]")


class AggregateOptions(BaseModel):
    include_xml: bool = True
    include_structure: bool = True


class SourceRef(BaseModel):
    id: str
    name: str


class CombinedMetadata(BaseModel):
    generated: str
    total_sources: int
    generator: str = GENERATOR
    version: str = FORMAT_VERSION
    sources: list[SourceRef] = Field(default_factory=list)


class CombinedSource(BaseModel):
    id: str
    name: str
    url: str
    timestamp: str
    status: str = "success"
    content_type: str
    content_length: int
    root_element: str | None = None
    xml_content: str


class CombinedStructure(BaseModel):
    """JSON-serialisable mirror of the combined document."""

    version: str = FORMAT_VERSION
    timestamp: str
    sources_count: int
    metadata: CombinedMetadata
    sources: list[CombinedSource] = Field(default_factory=list)


class CombinedDocument(BaseModel):
    timestamp: str
    source_count: int
    xml: str | None = None
    structure: CombinedStructure | None = None


def escape_attr(value: object) -> str:
    """Escape ``& < > " '`` for use inside a double-quoted attribute."""
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def strip_declaration(raw: str) -> str:
    """Remove a leading XML declaration; other processing instructions stay."""
    return _DECLARATION_RE.sub("", raw, count=1)


def strip_doctype(raw: str) -> str:
    """Remove the document type declaration from the prolog, if there is one.

    A DOCTYPE is only legal before the root element, so a match that starts
    after the first start tag is left alone.
    """
    match = _DOCTYPE_RE.search(raw)
    if match is None:
        return raw
    first = _FIRST_ELEMENT_RE.search(raw)
    if first is not None and first.start() < match.start():
        return raw
    return raw[: match.start()] + raw[match.end() :]


def embeddable_content(raw: str) -> str:
    return strip_doctype(strip_declaration(raw))


def _render_xml(sources: Sequence[ValidatedSource], timestamp: str) -> str:
    count = len(sources)
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n',
        f'<{ROOT_ELEMENT} version="{FORMAT_VERSION}" timestamp="{escape_attr(timestamp)}" sources="{count}">\n',
        "  <metadata>\n",
        f"    <generated>{escape_attr(timestamp)}</generated>\n",
        f"    <totalSources>{count}</totalSources>\n",
        f"    <generator>{GENERATOR}</generator>\n",
        f"    <version>{FORMAT_VERSION}</version>\n",
        "    <sources>\n",
    ]
    for item in sources:
        parts.append(f'      <source id="{escape_attr(item.source.source_id)}" name="{escape_attr(item.source.source_name)}" />\n')
    parts.append("    </sources>\n")
    parts.append("  </metadata>\n")

    for item in sources:
        success = item.source
        attrs = " ".join(
            [
                f'id="{escape_attr(success.source_id)}"',
                f'name="{escape_attr(success.source_name)}"',
                f'url="{escape_attr(success.url or "unknown")}"',
                f'timestamp="{escape_attr(success.fetched_at or timestamp)}"',
                'status="success"',
                f'content-type="{escape_attr(success.content_type or "application/xml")}"',
                f'content-length="{success.content_length}"',
            ]
        )
        content = embeddable_content(success.body)
        parts.append(f"  <source {attrs}>\n")
        parts.append(content)
        if not content.endswith("\n"):
            parts.append("\n")
        parts.append("  </source>\n")

    parts.append(f"</{ROOT_ELEMENT}>")
    return "".join(parts)


def _build_structure(sources: Sequence[ValidatedSource], timestamp: str) -> CombinedStructure:
    return CombinedStructure(
        timestamp=timestamp,
        sources_count=len(sources),
        metadata=CombinedMetadata(
            generated=timestamp,
            total_sources=len(sources),
            sources=[SourceRef(id=s.source.source_id, name=s.source.source_name) for s in sources],
        ),
        sources=[
            CombinedSource(
                id=s.source.source_id,
                name=s.source.source_name,
                url=s.source.url or "unknown",
                timestamp=s.source.fetched_at or timestamp,
                content_type=s.source.content_type or "application/xml",
                content_length=s.source.content_length,
                root_element=s.root_element,
                xml_content=s.source.body,
            )
            for s in sources
        ],
    )


def aggregate(
    validated: Sequence[ValidatedSource],
    options: AggregateOptions | None = None,
    *,
    timestamp: str | None = None,
) -> CombinedDocument:
    """Wrap every well-formed source, in input order, into one document.

    Raises:
        AggregationError: ``no_valid_sources`` when nothing is well-formed,
            ``build_failure`` for any error while building.
    """
    options = options or AggregateOptions()
    usable = [item for item in validated if item.is_well_formed]
    if not usable:
        raise AggregationError("No well-formed XML sources to aggregate", kind=ErrorKind.NO_VALID_SOURCES)

    stamp = timestamp or utc_now_iso()
    try:
        xml_text = _render_xml(usable, stamp) if options.include_xml else None
        structure = _build_structure(usable, stamp) if options.include_structure else None
    except Exception as exc:
        logger.error("aggregation_build_failed", error=str(exc))
        raise AggregationError(f"Failed to build combined document: {exc}", kind=ErrorKind.BUILD_FAILURE) from exc

    logger.info("aggregation_built", sources=len(usable), xml=xml_text is not None, structure=structure is not None)
    return CombinedDocument(timestamp=stamp, source_count=len(usable), xml=xml_text, structure=structure)


__all__ = [
    "AggregateOptions",
    "CombinedDocument",
    "CombinedMetadata",
    "CombinedSource",
    "CombinedStructure",
    "SourceRef",
    "aggregate",
    "escape_attr",
    "embeddable_content",
    "strip_declaration",
    "strip_doctype",
]
