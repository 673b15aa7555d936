"""FastAPI route definitions for the quote read API."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Path, Query, Response

import quote_keeper
from quote_keeper.api.deps import AppState, get_app_state, get_metrics, get_store
from quote_keeper.api.schemas import (
    ErrorResponse,
    HealthResponse,
    PollerStatusResponse,
    QuoteResponse,
)
from quote_keeper.core.metrics import METRICS_CONTENT_TYPE, Metrics
from quote_keeper.history.store import QuoteStore

router = APIRouter()
# Served at the root, outside the versioned read API.
metrics_router = APIRouter()

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "No stored quotes"}}


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """Storage health and poller counters."""
    healthy = await state.store.health_check()
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=quote_keeper.__version__,
        storage_backend=str(state.config.storage.backend.value),
        symbols=list(state.config.poll.symbols),
        poller=PollerStatusResponse(
            running=state.poller.running, **asdict(state.poller.stats)
        ),
    )


# -- Quotes --


@router.get(
    "/stock/{symbol}", response_model=list[QuoteResponse], responses=_NOT_FOUND
)
async def get_stock(
    symbol: str = Path(..., pattern=r"^[a-zA-Z0-9]+$"),
    last: int = Query(1, description="Number of quotes; values below 1 mean 1"),
    store: QuoteStore = Depends(get_store),
):
    """The latest quotes for one symbol, newest first."""
    quotes = await store.query(symbol, last)
    return [QuoteResponse.from_quote(q) for q in quotes]


@router.get(
    "/stocks", response_model=dict[str, list[QuoteResponse]], responses=_NOT_FOUND
)
async def get_stocks(
    symbols: str | None = Query(
        None, description="Comma-separated symbols; defaults to the tracked set"
    ),
    last: int = Query(1, description="Quotes per symbol; values below 1 mean 1"),
    store: QuoteStore = Depends(get_store),
):
    """The latest quotes for several symbols, keyed by symbol."""
    requested = symbols.split(",") if symbols else []
    batch = await store.query_batch(requested, last)
    return {
        symbol: [QuoteResponse.from_quote(q) for q in quotes]
        for symbol, quotes in batch.items()
    }


# -- Metrics --


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics_endpoint(metrics: Metrics = Depends(get_metrics)):
    """Prometheus text exposition."""
    return Response(metrics.render(), media_type=METRICS_CONTENT_TYPE)
