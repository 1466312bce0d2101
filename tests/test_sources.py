"""Tests for source descriptors and the static provider.

Covers:
- Defaults and clamping of timeout, retries and interval
- Enabled filtering and stable ordering
- Loading sources files (object and bare list forms)
- Provider status recording
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from xmlaggregator.errors import ConfigError
from xmlaggregator.sources import (
    SourceDescriptor,
    StaticSourceProvider,
    StatusNotification,
    enabled_in_order,
    load_descriptors,
    parse_descriptors,
)

CLAMP_CASES = [
    ({"timeout_ms": 10}, "timeout_ms", 1000),
    ({"timeout": 2500}, "timeout_ms", 2500),
    ({"retries": 0}, "retries", 3),
    ({"retries": -2}, "retries", 1),
    ({"interval_s": 5}, "interval_s", 30),
    ({"interval": 600}, "interval_s", 600),
]


class TestSourceDescriptor:
    def test_defaults(self):
        d = SourceDescriptor(id="a", name="A", url="https://a.test")
        assert d.timeout_ms == 5000
        assert d.retries == 3
        assert d.interval_s == 300
        assert d.headers == {}
        assert d.enabled is True

    @pytest.mark.parametrize("overrides,field,expected", CLAMP_CASES)
    def test_clamping(self, overrides, field, expected):
        d = SourceDescriptor(id="a", name="A", url="https://a.test", **overrides)
        assert getattr(d, field) == expected

    def test_frozen(self):
        d = SourceDescriptor(id="a", name="A", url="https://a.test")
        with pytest.raises(ValidationError):
            d.url = "https://other.test"  # type: ignore[misc]

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            SourceDescriptor(id="", name="A", url="https://a.test")

    def test_enabled_requires_url(self):
        assert not SourceDescriptor(id="a", name="A", url="").is_enabled
        assert not SourceDescriptor(id="a", name="A", url="https://a.test", enabled=False).is_enabled


class TestEnabledInOrder:
    def test_filters_and_sorts_stably(self):
        descriptors = [
            SourceDescriptor(id="c", name="C", url="https://c.test", order=2),
            SourceDescriptor(id="off", name="Off", url="https://off.test", order=0, enabled=False),
            SourceDescriptor(id="a", name="A", url="https://a.test", order=1),
            SourceDescriptor(id="b", name="B", url="https://b.test", order=1),
            SourceDescriptor(id="nourl", name="No URL", url="", order=0),
        ]
        assert [d.id for d in enabled_in_order(descriptors)] == ["a", "b", "c"]


class TestParseDescriptors:
    def test_object_form_fills_names_and_order(self):
        descriptors = parse_descriptors({"sources": [{"id": "x", "url": "https://x.test"}, {"id": "y", "url": "https://y.test"}]})
        assert [d.name for d in descriptors] == ["Source 1", "Source 2"]
        assert [d.order for d in descriptors] == [0, 1]

    def test_bare_list_form(self):
        descriptors = parse_descriptors([{"id": "x", "name": "X", "url": "https://x.test", "order": 7}])
        assert descriptors[0].order == 7

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ConfigError, match="Duplicate"):
            parse_descriptors([{"id": "x", "url": "u"}, {"id": "x", "url": "v"}])

    @pytest.mark.parametrize("raw", ["nope", 3, [1, 2]], ids=["string", "int", "list_of_ints"])
    def test_bad_shapes(self, raw):
        with pytest.raises(ConfigError):
            parse_descriptors(raw)

    def test_invalid_item_wrapped_in_config_error(self):
        with pytest.raises(ConfigError, match="Invalid source #1"):
            parse_descriptors([{"url": "https://x.test"}])


class TestLoadDescriptors:
    def test_reads_json_file(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text(json.dumps({"sources": [{"id": "feed", "name": "Feed", "url": "https://feed.test"}]}))
        assert [d.id for d in load_descriptors(path)] == ["feed"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_descriptors(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_descriptors(path)


class TestStaticSourceProvider:
    @pytest.mark.asyncio
    async def test_enabled_sources_and_status(self):
        provider = StaticSourceProvider(
            [
                SourceDescriptor(id="b", name="B", url="https://b.test", order=1),
                SourceDescriptor(id="a", name="A", url="https://a.test", order=0),
            ]
        )
        assert [d.id for d in await provider.enabled_sources()] == ["a", "b"]

        note = StatusNotification(
            source_id="a",
            status="success",
            timestamp="2024-01-01T00:00:00.000Z",
            response_time_ms=12,
            attempts=1,
            content_length=40,
        )
        await provider.report_status(note)
        assert provider.last_status("a") == note
        assert provider.last_status("b") is None
