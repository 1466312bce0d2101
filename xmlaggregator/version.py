from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as metadata_version


def _resolve_version() -> str:
    try:
        return metadata_version("xml-aggregator")
    except PackageNotFoundError:
        return "unknown"


__version__ = _resolve_version()
