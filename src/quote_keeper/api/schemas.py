"""API-specific response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from quote_keeper.core.models import Quote


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


class QuoteResponse(BaseModel):
    """A single quote as served to clients."""

    price: float
    symbol: str
    time: datetime

    @classmethod
    def from_quote(cls, quote: Quote) -> QuoteResponse:
        return cls(price=quote.price, symbol=quote.symbol, time=quote.timestamp)


class PollerStatusResponse(BaseModel):
    running: bool
    cycles: int
    fetch_failures: int
    store_failures: int
    quotes_stored: int
    last_success: datetime | None = None


class HealthResponse(BaseModel):
    """System health."""

    status: str
    version: str
    storage_backend: str
    symbols: list[str]
    poller: PollerStatusResponse
