"""xml-aggregator error hierarchy.

All project exceptions inherit from AggregatorError, enabling:
- ``except AggregatorError`` at top-level boundaries (CLI, HTTP collaborators)
- Fine-grained catches deeper in the stack (``except CacheWriteError``)

Every error carries an ``ErrorKind`` so results and status notifications can
report a machine-readable classification.

Hierarchy:
    AggregatorError
    ├── ConfigError
    ├── FetchError
    │   ├── TransportError              timeout, dns_error, connection_*, tls_error, unknown
    │   └── RemoteStatusError           client_error (4xx), server_error (5xx)
    ├── XmlValidationError              malformed_xml, empty_body, unbalanced_tags, missing_root
    ├── AggregationError                no_valid_sources, build_failure
    ├── CacheError
    │   ├── CacheWriteError             write_failed
    │   └── CacheReadError              read_corrupted
    └── ConcurrencyError                already_in_flight
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable error classification."""

    TIMEOUT = "timeout"
    DNS_ERROR = "dns_error"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TLS_ERROR = "tls_error"
    UNKNOWN = "unknown"

    MALFORMED_XML = "malformed_xml"
    EMPTY_BODY = "empty_body"
    UNBALANCED_TAGS = "unbalanced_tags"
    MISSING_ROOT = "missing_root"

    NO_VALID_SOURCES = "no_valid_sources"
    BUILD_FAILURE = "build_failure"

    WRITE_FAILED = "write_failed"
    READ_CORRUPTED = "read_corrupted"

    ALREADY_IN_FLIGHT = "already_in_flight"

    def __str__(self) -> str:
        return self.value


class AggregatorError(Exception):
    """Base class for all xml-aggregator errors."""

    default_kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind


class ConfigError(AggregatorError):
    """Invalid settings or source descriptor input."""


class FetchError(AggregatorError):
    """Base class for retrieval failures."""


class TransportError(FetchError):
    """Network-level failure (timeout, DNS, refused, reset, TLS)."""


class RemoteStatusError(FetchError):
    """Remote answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        kind = ErrorKind.SERVER_ERROR if status_code >= 500 else ErrorKind.CLIENT_ERROR
        super().__init__(message or f"HTTP {status_code}", kind=kind)
        self.status_code = status_code


class XmlValidationError(AggregatorError):
    """Raw text is not usable XML."""

    default_kind = ErrorKind.MALFORMED_XML


class AggregationError(AggregatorError):
    """The combined document could not be produced."""

    default_kind = ErrorKind.BUILD_FAILURE


class CacheError(AggregatorError):
    """Base class for cache tier failures."""


class CacheWriteError(CacheError):
    default_kind = ErrorKind.WRITE_FAILED


class CacheReadError(CacheError):
    default_kind = ErrorKind.READ_CORRUPTED


class ConcurrencyError(AggregatorError):
    """A retrieval for the same source is already outstanding."""

    default_kind = ErrorKind.ALREADY_IN_FLIGHT


__all__ = [
    "AggregationError",
    "AggregatorError",
    "CacheError",
    "CacheReadError",
    "CacheWriteError",
    "ConcurrencyError",
    "ConfigError",
    "ErrorKind",
    "FetchError",
    "RemoteStatusError",
    "TransportError",
    "XmlValidationError",
]
