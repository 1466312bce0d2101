"""Tests for building the combined document.

Covers:
- Layout of the combined XML and that it parses
- Source order and exclusion of malformed sources
- Attribute escaping (table and property)
- Verbatim embedding of source content
- Only a leading declaration and the DOCTYPE are removed
- Structure mirror and output options
- no_valid_sources and build_failure errors
"""

from __future__ import annotations

import importlib
import xml.etree.ElementTree as ET

import pytest
from hypothesis import given
from hypothesis import strategies as st

from xmlaggregator.errors import AggregationError, ErrorKind
from xmlaggregator.xml import AggregateOptions, aggregate, escape_attr, validate_source

from tests.helpers import make_success

aggregate_module = importlib.import_module("xmlaggregator.xml.aggregate")

STAMP = "2024-05-01T12:00:00.000Z"


def _validated(*pairs):
    return [validate_source(make_success(source_id, body)) for source_id, body in pairs]


# =============================================================================
# Layout
# =============================================================================


class TestCombinedXml:
    def test_parses_and_has_metadata_block(self):
        doc = aggregate(_validated(("a", "<feed><item>1</item></feed>"), ("b", "<list/>")), timestamp=STAMP)
        root = ET.fromstring(doc.xml)

        assert root.tag == "xml-aggregator"
        assert root.get("version") == "1.0"
        assert root.get("timestamp") == STAMP
        assert root.get("sources") == "2"

        meta = root.find("metadata")
        assert meta.findtext("generated") == STAMP
        assert meta.findtext("totalSources") == "2"
        assert meta.findtext("generator") == "XML-Aggregator"
        assert [s.get("id") for s in meta.find("sources")] == ["a", "b"]

        wrapped = root.findall("source")
        assert [s.get("id") for s in wrapped] == ["a", "b"]
        assert wrapped[0].get("status") == "success"
        assert wrapped[0].get("content-length") == str(len("<feed><item>1</item></feed>"))
        assert wrapped[0].find("feed/item").text == "1"

    def test_exact_source_block(self):
        doc = aggregate(_validated(("a", "<x/>")), timestamp=STAMP)
        expected_block = (
            '  <source id="a" name="Source a" url="https://a.example.test/feed.xml" '
            'timestamp="2024-01-01T00:00:00.000Z" status="success" content-type="application/xml" '
            'content-length="4">\n'
            "<x/>\n"
            "  </source>\n"
        )
        assert doc.xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<xml-aggregator ')
        assert expected_block in doc.xml
        assert doc.xml.endswith("</xml-aggregator>")

    def test_declaration_stripped_and_content_verbatim(self):
        body = '<?xml version="1.0" encoding="UTF-8"?>\n<doc>\n  <p a="1">text &amp; more</p>\n</doc>\n'
        doc = aggregate(_validated(("a", body)), timestamp=STAMP)
        assert doc.xml.count("<?xml") == 1
        assert '<doc>\n  <p a="1">text &amp; more</p>\n</doc>\n  </source>' in doc.xml

    def test_malformed_sources_excluded_in_order(self):
        validated = _validated(("a", "<a/>"), ("bad", "<root><open>"), ("c", "<c/>"))
        doc = aggregate(validated, timestamp=STAMP)
        assert doc.source_count == 2
        ids = [s.get("id") for s in ET.fromstring(doc.xml).findall("source")]
        assert ids == ["a", "c"]

    def test_inputs_not_modified(self):
        validated = _validated(("a", '<?xml version="1.0"?><a/>'))
        before = [v.model_dump() for v in validated]
        aggregate(validated, timestamp=STAMP)
        assert [v.model_dump() for v in validated] == before

    def test_stylesheet_instruction_kept_without_declaration(self):
        body = '<?xml-stylesheet type="text/xsl" href="s.xsl"?><rss><channel/></rss>'
        doc = aggregate(_validated(("a", body)), timestamp=STAMP)
        assert body + "\n  </source>" in doc.xml
        assert ET.fromstring(doc.xml).find("source/rss/channel") is not None

    def test_only_the_declaration_is_stripped_before_a_stylesheet(self):
        body = '<?xml version="1.0"?>\n<?xml-stylesheet href="s.xsl"?>\n<rss/>'
        doc = aggregate(_validated(("a", body)), timestamp=STAMP)
        assert '<?xml-stylesheet href="s.xsl"?>\n<rss/>\n  </source>' in doc.xml
        assert doc.xml.count("<?xml ") == 1

    def test_doctype_dropped_so_combined_document_parses(self):
        body = '<?xml version="1.0"?>\n<!DOCTYPE note SYSTEM "note.dtd">\n<note><to>x</to></note>'
        doc = aggregate(_validated(("a", body)), timestamp=STAMP)
        assert "DOCTYPE" not in doc.xml
        assert "<note><to>x</to></note>\n  </source>" in doc.xml
        assert ET.fromstring(doc.xml).find("source/note/to").text == "x"

    def test_structure_keeps_original_body_with_doctype(self):
        body = '<!DOCTYPE note SYSTEM "note.dtd">\n<note/>'
        doc = aggregate(_validated(("a", body)), timestamp=STAMP)
        assert doc.structure.sources[0].xml_content == body


STRIP_DOCTYPE_CASES = [
    ('<!DOCTYPE a SYSTEM "a.dtd">\n<a/>', "<a/>", "system"),
    ("<!DOCTYPE a [\n  <!ELEMENT a (#PCDATA)>\n]>\n<a>hi</a>", "<a>hi</a>", "internal_subset"),
    ("<!-- note -->\n<!DOCTYPE a>\n<a/>", "<!-- note -->\n<a/>", "after_comment"),
    ("<a><![CDATA[<!DOCTYPE x>]]></a>", "<a><![CDATA[<!DOCTYPE x>]]></a>", "inside_content"),
    ("<a/>", "<a/>", "none"),
]


@pytest.mark.parametrize("raw,expected,desc", STRIP_DOCTYPE_CASES, ids=[c[2] for c in STRIP_DOCTYPE_CASES])
def test_strip_doctype(raw, expected, desc):
    assert aggregate_module.strip_doctype(raw) == expected


# =============================================================================
# Escaping
# =============================================================================

ESCAPE_CASES = [
    ("A & B <test>", "A &amp; B &lt;test&gt;"),
    ('say "hi"', "say &quot;hi&quot;"),
    ("it's", "it&#x27;s"),
    (None, ""),
    (42, "42"),
]


@pytest.mark.parametrize("value,expected", ESCAPE_CASES)
def test_escape_attr(value, expected):
    assert escape_attr(value) == expected


def test_escaped_name_round_trips_through_parser():
    validated = [validate_source(make_success("a", "<a/>", source_name="A & B <test>"))]
    root = ET.fromstring(aggregate(validated, timestamp=STAMP).xml)
    assert root.find("source").get("name") == "A & B <test>"
    assert root.find("metadata/sources/source").get("name") == "A & B <test>"


@given(st.text(alphabet=st.characters(min_codepoint=0x20, max_codepoint=0xD7FF)))
def test_escaped_attribute_parses_back(value):
    escaped = escape_attr(value)
    assert "<" not in escaped and '"' not in escaped
    assert ET.fromstring(f'<a v="{escaped}"/>').get("v") == value


# =============================================================================
# Options and structure
# =============================================================================


class TestOptions:
    def test_structure_mirrors_sources(self):
        doc = aggregate(_validated(("a", "<feed/>"), ("b", "<list/>")), timestamp=STAMP)
        structure = doc.structure
        assert structure.sources_count == 2
        assert structure.metadata.total_sources == 2
        assert [s.id for s in structure.sources] == ["a", "b"]
        assert structure.sources[0].root_element == "feed"
        assert structure.sources[0].xml_content == "<feed/>"

    def test_xml_only(self):
        doc = aggregate(_validated(("a", "<a/>")), AggregateOptions(include_structure=False), timestamp=STAMP)
        assert doc.xml is not None
        assert doc.structure is None

    def test_structure_only(self):
        doc = aggregate(_validated(("a", "<a/>")), AggregateOptions(include_xml=False), timestamp=STAMP)
        assert doc.xml is None
        assert doc.structure is not None

    def test_default_timestamp_is_set(self):
        doc = aggregate(_validated(("a", "<a/>")))
        assert doc.timestamp.endswith("Z")


# =============================================================================
# Errors
# =============================================================================


class TestErrors:
    def test_no_valid_sources(self):
        with pytest.raises(AggregationError) as excinfo:
            aggregate(_validated(("bad", "not xml")))
        assert excinfo.value.kind is ErrorKind.NO_VALID_SOURCES

    def test_empty_input(self):
        with pytest.raises(AggregationError) as excinfo:
            aggregate([])
        assert excinfo.value.kind is ErrorKind.NO_VALID_SOURCES

    def test_build_failure(self, monkeypatch):
        def explode(sources, timestamp):
            raise RuntimeError("renderer broke")

        monkeypatch.setattr(aggregate_module, "_render_xml", explode)
        with pytest.raises(AggregationError) as excinfo:
            aggregate(_validated(("a", "<a/>")))
        assert excinfo.value.kind is ErrorKind.BUILD_FAILURE
        assert "renderer broke" in str(excinfo.value)
