"""Map retrieval exceptions onto ``ErrorKind`` values.

httpx wraps the underlying socket error (``raise ConnectError(...) from exc``)
so classification walks the ``__cause__``/``__context__`` chain before
falling back to message matching.
"""

from __future__ import annotations

import asyncio
import socket
import ssl
from collections.abc import Iterator

import httpx

from xmlaggregator.errors import AggregatorError, ErrorKind, RemoteStatusError

_MESSAGE_HINTS: tuple[tuple[tuple[str, ...], ErrorKind], ...] = (
    (("timed out", "timeout"), ErrorKind.TIMEOUT),
    (
        ("name or service not known", "nodename nor servname", "getaddrinfo", "no address associated", "temporary failure in name resolution"),
        ErrorKind.DNS_ERROR,
    ),
    (("connection refused",), ErrorKind.CONNECTION_REFUSED),
    (("connection reset", "reset by peer"), ErrorKind.CONNECTION_RESET),
    (("certificate", "ssl", "tls"), ErrorKind.TLS_ERROR),
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _classify_single(exc: BaseException) -> ErrorKind | None:
    if isinstance(exc, RemoteStatusError):
        return exc.kind
    if isinstance(exc, AggregatorError) and exc.kind is not ErrorKind.UNKNOWN:
        return exc.kind
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return ErrorKind.SERVER_ERROR if exc.response.status_code >= 500 else ErrorKind.CLIENT_ERROR
    if isinstance(exc, socket.gaierror):
        return ErrorKind.DNS_ERROR
    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, ConnectionResetError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(exc, ssl.SSLError):
        return ErrorKind.TLS_ERROR
    return None


def classify_exception(exc: BaseException) -> ErrorKind:
    """Return the error kind for a terminal retrieval failure."""
    chain = list(_exception_chain(exc))
    for item in chain:
        kind = _classify_single(item)
        if kind is not None:
            return kind

    for item in chain:
        message = str(item).lower()
        for needles, kind in _MESSAGE_HINTS:
            if any(needle in message for needle in needles):
                return kind
    return ErrorKind.UNKNOWN


def describe_exception(exc: BaseException) -> str:
    """Human-readable message; falls back to the class name for empty messages."""
    message = str(exc).strip()
    return message or type(exc).__name__


__all__ = ["classify_exception", "describe_exception"]
