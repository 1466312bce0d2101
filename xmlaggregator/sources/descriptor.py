"""Source descriptors: one remote XML endpoint and how to retrieve it."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from xmlaggregator.errors import ConfigError
from xmlaggregator.lib.json import JSONDecodeError, loads

MIN_TIMEOUT_MS = 1000
MIN_RETRIES = 1
MIN_INTERVAL_S = 30


class SourceDescriptor(BaseModel):
    """Immutable description of a single source for the duration of a run.

    Out-of-range ``timeout_ms``, ``retries`` and ``interval_s`` values are
    clamped up to their minimum instead of rejected, so a hand-edited sources
    file with ``"interval": 5`` still loads.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    url: str = ""
    timeout_ms: int = Field(default=5000, validation_alias=AliasChoices("timeout_ms", "timeout"))
    retries: int = 3
    headers: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True
    order: int = 0
    interval_s: int = Field(default=300, validation_alias=AliasChoices("interval_s", "interval"))

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _clamp_timeout(cls, v: Any) -> int:
        return max(MIN_TIMEOUT_MS, int(v or 5000))

    @field_validator("retries", mode="before")
    @classmethod
    def _clamp_retries(cls, v: Any) -> int:
        return max(MIN_RETRIES, int(v or 3))

    @field_validator("interval_s", mode="before")
    @classmethod
    def _clamp_interval(cls, v: Any) -> int:
        return max(MIN_INTERVAL_S, int(v or 300))

    @property
    def is_enabled(self) -> bool:
        return self.enabled and bool(self.url)


def enabled_in_order(descriptors: Iterable[SourceDescriptor]) -> list[SourceDescriptor]:
    """Enabled descriptors with a URL, stably sorted by ``order``."""
    return sorted((d for d in descriptors if d.is_enabled), key=lambda d: d.order)


def parse_descriptors(raw: Any) -> list[SourceDescriptor]:
    """Build descriptors from decoded JSON (``{"sources": [...]}`` or a bare list).

    Missing ``name`` becomes ``"Source <n>"`` (1-based) and missing ``order``
    the 0-based list position.
    """
    if isinstance(raw, dict):
        raw = raw.get("sources", [])
    if not isinstance(raw, list):
        raise ConfigError("Sources must be a list or an object with a 'sources' list")

    descriptors: list[SourceDescriptor] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"Source #{index + 1} is not an object")
        data = dict(item)
        data.setdefault("name", f"Source {index + 1}")
        if data.get("order") is None:
            data["order"] = index
        try:
            descriptors.append(SourceDescriptor.model_validate(data))
        except ValidationError as exc:
            raise ConfigError(f"Invalid source #{index + 1}: {exc}") from exc

    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.id in seen:
            raise ConfigError(f"Duplicate source id '{descriptor.id}'")
        seen.add(descriptor.id)
    return descriptors


def load_descriptors(path: Path) -> list[SourceDescriptor]:
    """Read a JSON sources file."""
    try:
        raw = loads(Path(path).read_bytes())
    except FileNotFoundError as exc:
        raise ConfigError(f"Sources file not found: {path}") from exc
    except JSONDecodeError as exc:
        raise ConfigError(f"Sources file is not valid JSON: {path}: {exc}") from exc
    return parse_descriptors(raw)


__all__ = [
    "SourceDescriptor",
    "enabled_in_order",
    "load_descriptors",
    "parse_descriptors",
]
