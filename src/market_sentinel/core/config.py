"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from market_sentinel.core.exceptions import ConfigError
from market_sentinel.core.models import StorageBackend

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36"
)


class SourcesConfig(BaseModel):
    """Price source adapter configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: list[str] | None = None
    request_timeout: float = 15.0
    user_agent: str = DEFAULT_USER_AGENT
    retries: int = 1
    retry_delay: float = 2.0
    default_currency: str = "NGN"
    default_location: str = "Nigeria"

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("retries")
    @classmethod
    def retries_bounded(cls, v: int) -> int:
        if v < 0 or v > 3:
            raise ValueError("retries must be between 0 and 3")
        return v

    @field_validator("retry_delay")
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_delay must be >= 0")
        return v

    @field_validator("default_currency")
    @classmethod
    def currency_is_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not re.fullmatch(r"[A-Z]{3}", v):
            raise ValueError("default_currency must be a 3-letter code")
        return v

    @field_validator("enabled", mode="before")
    @classmethod
    def lowercase_names(cls, v: str | list[str] | None) -> list[str] | None:
        """Accepts a list or a comma-separated string ("nnpc,jumia")."""
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        return [name.strip().lower() for name in v if name.strip()]


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/market_sentinel.db"


class CacheConfig(BaseModel):
    """Freshness windows for the read path."""

    model_config = ConfigDict(frozen=True)

    hot_window_minutes: int = 60
    retention_hours: int = 24
    refresh_timeout: float = 45.0

    @field_validator("hot_window_minutes", "retention_hours")
    @classmethod
    def window_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("freshness windows must be >= 1")
        return v

    @field_validator("refresh_timeout")
    @classmethod
    def refresh_timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("refresh_timeout must be > 0")
        return v

    @model_validator(mode="after")
    def hot_inside_retention(self) -> CacheConfig:
        if self.hot_window_minutes > self.retention_hours * 60:
            raise ValueError("hot_window_minutes cannot exceed the retention window")
        return self


class SchedulerConfig(BaseModel):
    """Periodic scrape configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval_hours: float = 4.0

    @field_validator("interval_hours")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_hours must be > 0")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 4000
    api_key: str | None = None
    rate_limit: str = "100/15minutes"
    default_limit: int = 100
    max_limit: int = 1000

    @model_validator(mode="after")
    def limits_consistent(self) -> APIConfig:
        if self.default_limit < 1 or self.default_limit > self.max_limit:
            raise ValueError("default_limit must be between 1 and max_limit")
        return self


class SentinelConfig(BaseModel):
    """Root configuration for the entire market-sentinel system."""

    model_config = ConfigDict(frozen=True)

    sources: SourcesConfig = SourcesConfig()
    storage: StorageConfig = StorageConfig()
    cache: CacheConfig = CacheConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    api: APIConfig = APIConfig()
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return v


def load_config(
    config_path: str | None = None,
    env_prefix: str = "MARKET_SENTINEL_",
) -> SentinelConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (MARKET_SENTINEL_API__API_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        MARKET_SENTINEL_CACHE__HOT_WINDOW_MINUTES=30  ->  cache.hot_window_minutes = 30
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return SentinelConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("MARKET_SENTINEL_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from MARKET_SENTINEL_CONFIG not found: {env_path}",
                context={"field": "MARKET_SENTINEL_CONFIG", "value": env_path},
            )
        return p

    default = Path("market-sentinel.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = [p.lower() for p in key[len(prefix) :].split("__")]

        # The config-path variable is not a setting
        if parts == ["config"]:
            continue

        target = result
        for part in parts[:-1]:
            existing = target.get(part)
            if not isinstance(existing, dict):
                existing = {}
                target[part] = existing
            target = existing
        target[parts[-1]] = _auto_cast(value)

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
