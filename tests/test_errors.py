"""Tests for the error hierarchy.

Covers:
- Default kinds per error class
- Explicit kinds overriding defaults
- Everything rooted at AggregatorError
"""

from __future__ import annotations

import pytest

from xmlaggregator.errors import (
    AggregationError,
    AggregatorError,
    CacheReadError,
    CacheWriteError,
    ConcurrencyError,
    ConfigError,
    ErrorKind,
    RemoteStatusError,
    TransportError,
    XmlValidationError,
)
from xmlaggregator.fetch.classify import classify_exception

DEFAULT_KINDS = [
    (ConfigError("x"), ErrorKind.UNKNOWN),
    (TransportError("x"), ErrorKind.UNKNOWN),
    (XmlValidationError("x"), ErrorKind.MALFORMED_XML),
    (AggregationError("x"), ErrorKind.BUILD_FAILURE),
    (CacheWriteError("x"), ErrorKind.WRITE_FAILED),
    (CacheReadError("x"), ErrorKind.READ_CORRUPTED),
    (ConcurrencyError("x"), ErrorKind.ALREADY_IN_FLIGHT),
    (RemoteStatusError(500), ErrorKind.SERVER_ERROR),
]


@pytest.mark.parametrize("error,kind", DEFAULT_KINDS, ids=[type(e).__name__ for e, _ in DEFAULT_KINDS])
def test_default_kind(error, kind):
    assert error.kind is kind
    assert isinstance(error, AggregatorError)


def test_explicit_kind_wins():
    assert AggregationError("none", kind=ErrorKind.NO_VALID_SOURCES).kind is ErrorKind.NO_VALID_SOURCES


def test_kind_renders_as_value():
    assert str(ErrorKind.DNS_ERROR) == "dns_error"


def test_classified_transport_error_keeps_its_kind():
    assert classify_exception(TransportError("slow", kind=ErrorKind.TIMEOUT)) is ErrorKind.TIMEOUT
