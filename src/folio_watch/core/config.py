"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from folio_watch.core.exceptions import ConfigError
from folio_watch.core.models import StorageBackend


class ProviderConfig(BaseModel):
    """Settings shared by every quote provider adapter."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = ""
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 1.0
    batch_size: int = 10
    batch_delay: float = 0.5
    rate_limit: int = 5

    @field_validator("max_retries", "batch_size", "rate_limit")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("retry_delay", "batch_delay")
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v


class YahooProviderConfig(ProviderConfig):
    """Yahoo Finance chart API adapter."""

    base_url: str = "https://query2.finance.yahoo.com"
    retry_delay: float = 1.0


class GoogleProviderConfig(ProviderConfig):
    """Google Finance page scraper."""

    base_url: str = "https://www.google.com/finance/quote"
    retry_delay: float = 2.0
    rate_limit: int = 2


class ProvidersConfig(BaseModel):
    """Provider adapters and the order in which they are tried."""

    model_config = ConfigDict(frozen=True)

    order: list[str] = ["yahoo", "google"]
    yahoo: YahooProviderConfig = YahooProviderConfig()
    google: GoogleProviderConfig = GoogleProviderConfig()

    @field_validator("order", mode="before")
    @classmethod
    def single_name_as_list(cls, v: object) -> object:
        # FOLIO_WATCH_PROVIDERS__ORDER=google arrives as a bare string
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("order")
    @classmethod
    def order_known_and_unique(cls, v: list[str]) -> list[str]:
        known = {"yahoo", "google"}
        unknown = [name for name in v if name not in known]
        if unknown:
            raise ValueError(f"unknown providers in order: {unknown}")
        if len(set(v)) != len(v):
            raise ValueError("provider order must not repeat a provider")
        return v


class MarketConfig(BaseModel):
    """Quote cache and orchestration settings (durations in seconds)."""

    model_config = ConfigDict(frozen=True)

    freshness_ttl: float = 300.0
    retention_ttl: float = 1800.0
    current_price_ttl: float = 60.0
    cleanup_interval: float = 600.0
    secondary_delay: float = 0.5
    default_exchange: str = "NSE"

    @field_validator("default_exchange")
    @classmethod
    def exchange_upper(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def retention_covers_freshness(self) -> MarketConfig:
        if self.freshness_ttl <= 0:
            raise ValueError("freshness_ttl must be > 0")
        if self.retention_ttl < self.freshness_ttl:
            raise ValueError("retention_ttl must be >= freshness_ttl")
        if self.cleanup_interval <= 0:
            raise ValueError("cleanup_interval must be > 0")
        return self


class SchedulerConfig(BaseModel):
    """Background price refresh settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval: float = 300.0

    @field_validator("interval")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval must be > 0")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/folio_watch.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class FolioConfig(BaseModel):
    """Root configuration for the entire folio-watch system."""

    model_config = ConfigDict(frozen=True)

    market: MarketConfig = MarketConfig()
    providers: ProvidersConfig = ProvidersConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "FOLIO_WATCH_",
) -> FolioConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (FOLIO_WATCH_MARKET__FRESHNESS_TTL, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        FOLIO_WATCH_SCHEDULER__INTERVAL=60  ->  scheduler.interval = 60
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return FolioConfig.model_validate(merged)
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

    env_path = os.environ.get("FOLIO_WATCH_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from FOLIO_WATCH_CONFIG not found: {env_path}",
                context={"field": "FOLIO_WATCH_CONFIG", "value": env_path},
            )
        return p

    default = Path("folio-watch.yml")
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
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float,
    comma-separated strings -> list.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = dict(target.get(part) or {})
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool | list[str]:
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
    if "," in value:
        return [v.strip() for v in value.split(",") if v.strip()]
    return value
