"""Shared filesystem paths for xml-aggregator."""

from __future__ import annotations

import os
from pathlib import Path


def _xdg_path(env_var: str, fallback: Path) -> Path:
    raw = os.environ.get(env_var)
    if raw:
        return Path(raw).expanduser()
    return fallback


CONFIG_ROOT = _xdg_path("XDG_CONFIG_HOME", Path.home() / ".config")
CACHE_ROOT = _xdg_path("XDG_CACHE_HOME", Path.home() / ".cache")

CONFIG_HOME = CONFIG_ROOT / "xml-aggregator"
CACHE_HOME = CACHE_ROOT / "xml-aggregator"

DEFAULT_SOURCES_PATH = CONFIG_HOME / "sources.json"


__all__ = [
    "CACHE_HOME",
    "CACHE_ROOT",
    "CONFIG_HOME",
    "CONFIG_ROOT",
    "DEFAULT_SOURCES_PATH",
]
