"""orjson helpers for cache payloads and CLI output."""

from __future__ import annotations

from typing import Any

import orjson

JSONDecodeError = orjson.JSONDecodeError
JSONEncodeError = orjson.JSONEncodeError

_BASE_OPTIONS = orjson.OPT_NON_STR_KEYS


def dumps(obj: Any, *, pretty: bool = False) -> str:
    """Encode ``obj``; raises ``JSONEncodeError`` (a ``TypeError``) when it cannot."""
    option = _BASE_OPTIONS | orjson.OPT_INDENT_2 if pretty else _BASE_OPTIONS
    return orjson.dumps(obj, option=option).decode("utf-8")


def dumps_pretty(obj: Any) -> str:
    return dumps(obj, pretty=True)


def loads(raw: str | bytes) -> Any:
    return orjson.loads(raw)


def encoded_size(obj: Any) -> int:
    """Size in bytes of the compact encoding, as stored by the durable cache."""
    return len(orjson.dumps(obj, option=_BASE_OPTIONS))


__all__ = ["JSONDecodeError", "JSONEncodeError", "dumps", "dumps_pretty", "encoded_size", "loads"]
