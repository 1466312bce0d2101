"""Tests for XML validation and metadata.

Covers:
- quick_check structural failures and their order
- Full parse failures after a passing quick check
- Metadata: declaration (not other xml-* instructions), namespaces, element counts, attributes
- validate_source on fetched documents
- basic_info, clean_xml, preview
"""

from __future__ import annotations

import pytest

from xmlaggregator.errors import ErrorKind
from xmlaggregator.xml import (
    basic_info,
    clean_xml,
    extract_metadata,
    preview,
    quick_check,
    validate,
    validate_source,
)

from tests.helpers import make_success

# =============================================================================
# Quick check
# =============================================================================

QUICK_CHECK_FAILURES = [
    ("", ErrorKind.EMPTY_BODY, "Empty XML content", "empty"),
    ("   \n\t", ErrorKind.EMPTY_BODY, "Empty XML content", "whitespace"),
    ("hello <a/>", ErrorKind.MALFORMED_XML, "Does not start with XML declaration or tag", "text_first"),
    ("<a><b></a", ErrorKind.UNBALANCED_TAGS, "Unbalanced XML tags", "unbalanced_brackets"),
    ("<!-- only a comment -->", ErrorKind.MISSING_ROOT, "No root element found", "comment_only"),
    ("<root><child>", ErrorKind.UNBALANCED_TAGS, "Root element 'root' not properly closed", "unclosed_root"),
]


@pytest.mark.parametrize(
    "raw,kind,message,desc",
    QUICK_CHECK_FAILURES,
    ids=[c[3] for c in QUICK_CHECK_FAILURES],
)
def test_quick_check_failures(raw, kind, message, desc):
    report = quick_check(raw)
    assert report.is_valid is False
    assert report.error_kind is kind
    assert report.error == message


QUICK_CHECK_PASSES = [
    ('<?xml version="1.0"?><feed><item/></feed>', "feed"),
    ("<root/>", "root"),
    ("  \n<ns:doc xmlns:ns='u'></ns:doc>", "ns:doc"),
]


@pytest.mark.parametrize("raw,root", QUICK_CHECK_PASSES)
def test_quick_check_passes(raw, root):
    report = quick_check(raw)
    assert report.is_valid is True
    assert report.root_element == root


def test_quick_check_none():
    assert quick_check(None).error_kind is ErrorKind.EMPTY_BODY


class TestValidate:
    def test_well_formed(self):
        assert validate("<a><b>text</b></a>").is_valid is True

    def test_mismatched_nesting_fails_full_parse(self):
        report = validate("<a><b></a></b>")
        assert report.is_valid is False
        assert report.error_kind is ErrorKind.MALFORMED_XML
        assert report.error.startswith("Invalid XML:")

    def test_quick_check_failure_short_circuits(self):
        assert validate("").error_kind is ErrorKind.EMPTY_BODY


# =============================================================================
# Metadata
# =============================================================================

RSS = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<rss xmlns="http://example.test/default" xmlns:dc="http://purl.org/dc/elements/1.1/" version="2.0">'
    '<channel><item id="1"/><item id="2"/></channel>'
    "</rss>"
)


class TestExtractMetadata:
    def test_rss_document(self):
        meta = extract_metadata(RSS)
        assert meta.size == len(RSS)
        assert meta.root_element == "rss"
        assert meta.has_declaration is True
        assert meta.declared_version == "1.0"
        assert meta.declared_encoding == "UTF-8"
        assert meta.approx_element_count == 4
        assert meta.has_attributes is True
        assert [(ns.prefix, ns.uri) for ns in meta.namespaces] == [
            ("default", "http://example.test/default"),
            ("dc", "http://purl.org/dc/elements/1.1/"),
        ]

    def test_defaults_without_declaration(self):
        meta = extract_metadata("<a><b/></a>")
        assert meta.has_declaration is False
        assert meta.declared_version == "1.0"
        assert meta.declared_encoding == "utf-8"
        assert meta.namespaces == []
        assert meta.has_attributes is False

    def test_stylesheet_instruction_is_not_a_declaration(self):
        meta = extract_metadata('<?xml-stylesheet type="text/xsl" href="s.xsl"?><rss><channel/></rss>')
        assert meta.has_declaration is False
        assert meta.root_element == "rss"

    def test_declaration_followed_by_stylesheet(self):
        meta = extract_metadata('<?xml version="1.1" encoding="UTF-8"?>\n<?xml-stylesheet href="s.xsl"?>\n<rss/>')
        assert meta.has_declaration is True
        assert meta.declared_version == "1.1"
        assert meta.root_element == "rss"

    def test_unparseable_document_falls_back_to_regex_count(self):
        meta = extract_metadata("<a><b></a></b><c/>")
        assert meta.approx_element_count == 3


class TestValidateSource:
    def test_well_formed_source_has_metadata(self):
        validated = validate_source(make_success("a", RSS))
        assert validated.is_well_formed is True
        assert validated.root_element == "rss"
        assert validated.approx_element_count == 4
        assert validated.metadata is not None
        assert validated.validation_error is None

    def test_invalid_source_keeps_fetch_and_error(self):
        validated = validate_source(make_success("b", "<root><unclosed>"))
        assert validated.is_well_formed is False
        assert validated.error_kind is ErrorKind.UNBALANCED_TAGS
        assert validated.metadata is None
        assert validated.source.source_id == "b"


# =============================================================================
# Helpers
# =============================================================================


def test_basic_info():
    info = basic_info('<?xml version="1.0" encoding="ISO-8859-1"?><a xmlns:x="u"><b/></a>')
    assert info.has_declaration is True
    assert info.encoding == "ISO-8859-1"
    assert info.root_element == "a"
    assert info.estimated_elements == 2
    assert info.has_namespaces is True


def test_basic_info_ignores_stylesheet_instruction():
    info = basic_info('<?xml-stylesheet href="s.xsl"?><rss/>')
    assert info.has_declaration is False
    assert info.root_element == "rss"


def test_clean_xml():
    assert clean_xml("<a>\x01\r\n  <b/>\r\n</a>  ") == "<a><b/></a>"


PREVIEW_CASES = [
    (None, 1000, "No XML data"),
    ("", 1000, "No XML data"),
    ("<a><b/></a>", 1000, "<a>\n<b/>\n</a>"),
    ("<a>" + "x" * 20 + "</a>", 10, "<a>xxxxxxx\n... (truncated)"),
]


@pytest.mark.parametrize("raw,limit,expected", PREVIEW_CASES)
def test_preview(raw, limit, expected):
    assert preview(raw, max_length=limit) == expected
