"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

Symbol = str

# The FAANG set, tracked when no symbols are configured.
DEFAULT_SYMBOLS: tuple[Symbol, ...] = ("fb", "aapl", "amzn", "nflx", "goog")

# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage engines."""

    MEMORY = "memory"
    SQLITE = "sqlite"


# --- Quote Models ---


class Quote(BaseModel):
    """An immutable snapshot of a stock's price.

    Symbols are canonicalized to lowercase. Timestamps are always
    timezone-aware; naive values are taken to be UTC.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: Symbol
    price: float
    timestamp: datetime = Field(alias="time")

    @field_validator("symbol")
    @classmethod
    def symbol_lowercase(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @field_validator("timestamp")
    @classmethod
    def timestamp_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


QuoteBatch = dict[Symbol, list[Quote]]
"""Symbol -> quotes, newest first. Only used as the batch-read result."""


def normalize_symbols(symbols: Iterable[str]) -> list[Symbol]:
    """Lowercase and de-duplicate symbols, keeping first-seen order.

    Blank entries are dropped, so ``"fb,,GOOG, fb"`` split on commas
    becomes ``["fb", "goog"]``.
    """
    seen: dict[str, None] = {}
    for symbol in symbols:
        s = symbol.strip().lower()
        if s:
            seen.setdefault(s, None)
    return list(seen)
