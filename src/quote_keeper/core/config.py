"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from quote_keeper.core.exceptions import ConfigError
from quote_keeper.core.models import DEFAULT_SYMBOLS, StorageBackend, normalize_symbols

DEFAULT_BATCH_ENDPOINT = "https://sandbox.iexapis.com/stable/stock/market/batch"
DEFAULT_CONFIG_FILE = "quote-keeper.yml"
ENV_PREFIX = "QUOTE_KEEPER_"
# Points the CLI at a config file; see cli.py.
CONFIG_ENV_VAR = "QUOTE_KEEPER_CONFIG"


class SourceConfig(BaseModel):
    """Quote source (IEX Cloud batch API) configuration."""

    model_config = ConfigDict(frozen=True)

    token: str
    batch_endpoint: str = DEFAULT_BATCH_ENDPOINT
    timeout: float = 10.0
    # Count and time every request to the quote source.
    metrics: bool = False

    @field_validator("token")
    @classmethod
    def token_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("token must not be empty")
        return v

    @field_validator("timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be > 0")
        return v


class StorageConfig(BaseModel):
    """Storage engine configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./stonks.sqlite"
    # Recreate the database file on startup. Set to False to keep history
    # across restarts.
    fresh_start: bool = True
    max_idle_connections: int = 2
    conn_max_lifetime: float | None = None

    @field_validator("max_idle_connections")
    @classmethod
    def idle_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_idle_connections must be >= 0")
        return v

    @field_validator("conn_max_lifetime")
    @classmethod
    def lifetime_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("conn_max_lifetime must be > 0 (omit for unlimited)")
        return v


class PollConfig(BaseModel):
    """Poller configuration.

    A non-positive interval is accepted here; the poller substitutes its
    default rather than refusing to start.
    """

    model_config = ConfigDict(frozen=True)

    interval: float = 60.0
    symbols: tuple[str, ...] = DEFAULT_SYMBOLS

    @field_validator("symbols", mode="before")
    @classmethod
    def split_and_normalize(cls, v):
        if isinstance(v, str):
            v = v.split(",")
        return tuple(normalize_symbols(v))


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 18081
    # Request metrics for /v1 routes, exposed on /metrics.
    metrics: bool = True


class LoggingConfig(BaseModel):
    """Log output configuration. Logs go to the console unless `file` is set."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    file: str | None = None
    max_bytes: int = 100 * 1024 * 1024
    backup_count: int = 5

    @field_validator("level")
    @classmethod
    def level_known(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return v


class QuoteKeeperConfig(BaseModel):
    """Root configuration for the entire quote-keeper system."""

    model_config = ConfigDict(frozen=True)

    source: SourceConfig
    storage: StorageConfig = StorageConfig()
    poll: PollConfig = PollConfig()
    api: APIConfig = APIConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(config_path: str | None = None) -> QuoteKeeperConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (QUOTE_KEEPER_SOURCE__TOKEN, etc.)
    2. YAML file at config_path, else ./quote-keeper.yml if present
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        QUOTE_KEEPER_POLL__INTERVAL=30  ->  poll.interval = 30
    List values are comma-separated:
        QUOTE_KEEPER_POLL__SYMBOLS=fb,goog
    """
    data = _load_yaml(_config_file(config_path))
    try:
        return QuoteKeeperConfig.model_validate(_overlay_env(data))
    except ValidationError as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _config_file(explicit: str | None) -> Path | None:
    if explicit is None:
        default = Path(DEFAULT_CONFIG_FILE)
        return default if default.is_file() else None
    path = Path(explicit)
    if not path.is_file():
        raise ConfigError(
            f"Config file not found: {explicit}",
            context={"field": "config_path", "value": explicit},
        )
    return path


def _load_yaml(path: Path | None) -> dict:
    if path is None:
        return {}
    context = {"field": "config_file", "value": str(path)}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse YAML config: {e}", context=context) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}",
            context=context,
        )
    return data


def _overlay_env(base: dict) -> dict:
    """Return ``base`` with QUOTE_KEEPER_* variables laid over it.

    ``base`` is not modified. CONFIG_ENV_VAR names the file itself and is
    not a setting.
    """
    result = dict(base)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_ENV_VAR:
            continue
        *sections, field = key[len(ENV_PREFIX) :].lower().split("__")
        target = result
        for section in sections:
            existing = target.get(section)
            target[section] = dict(existing) if isinstance(existing, dict) else {}
            target = target[section]
        target[field] = _auto_cast(value)
    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Cast "true"/"false" to bool and numeric strings to int or float."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
