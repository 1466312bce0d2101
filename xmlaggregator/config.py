"""Configuration using Pydantic Settings for automatic env var support."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from xmlaggregator.errors import ConfigError
from xmlaggregator.paths import CACHE_HOME

DEFAULT_USER_AGENT = "XML-Aggregator/1.0"
DEFAULT_ACCEPT = "application/xml, text/xml, */*"


class Settings(BaseSettings):
    """Runtime settings for the aggregation pipeline.

    Every field can be overridden through ``XMLAGG_<FIELD>`` environment
    variables, e.g. ``XMLAGG_MEMORY_CAPACITY=100``.
    """

    cache_dir: Path = Field(default=CACHE_HOME)
    cache_db_name: str = Field(default="cache.db")

    memory_capacity: int = Field(default=50, ge=1)
    default_ttl_ms: int = Field(default=300_000, ge=1)
    aggregate_ttl_ms: int = Field(default=60_000, ge=1)
    min_source_ttl_ms: int = Field(default=30_000, ge=0)
    source_key_bucket_s: int = Field(default=0, ge=0)
    sweep_interval_s: int = Field(default=7200, ge=1)

    retry_base_ms: int = Field(default=1000, ge=0)
    retry_cap_ms: int = Field(default=5000, ge=0)
    sequential_pause_ms: int = Field(default=100, ge=0)

    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    accept: str = Field(default=DEFAULT_ACCEPT)
    max_redirects: int = Field(default=5, ge=0)

    @field_validator("cache_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    @model_validator(mode="after")
    def _check_backoff(self) -> Settings:
        if self.retry_cap_ms < self.retry_base_ms:
            raise ValueError("retry_cap_ms must be >= retry_base_ms")
        return self

    model_config = SettingsConfigDict(
        env_prefix="XMLAGG_",
        extra="ignore",
    )

    @property
    def cache_db_path(self) -> Path:
        return self.cache_dir / self.cache_db_name


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment plus explicit overrides.

    Raises:
        ConfigError: When a value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


__all__ = ["DEFAULT_ACCEPT", "DEFAULT_USER_AGENT", "Settings", "load_settings"]
