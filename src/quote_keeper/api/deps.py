"""Dependency injection and middleware for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from quote_keeper.core.config import QuoteKeeperConfig
from quote_keeper.core.metrics import Metrics
from quote_keeper.history.store import QuoteStore
from quote_keeper.poll.poller import Poller

# Only the read API is instrumented.
INSTRUMENTED_PREFIX = "/v1/"


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: QuoteKeeperConfig
    store: QuoteStore
    poller: Poller
    metrics: Metrics


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_store(request: Request) -> QuoteStore:
    """Dependency: retrieve the quote store (read path only)."""
    return request.app.state.app_state.store


def get_metrics(request: Request) -> Metrics:
    """Dependency: the app's metrics, available before startup completes."""
    return request.app.state.metrics


async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: count, time and size every /v1 request."""
    if not request.url.path.startswith(INSTRUMENTED_PREFIX):
        return await call_next(request)

    metrics: Metrics = request.app.state.metrics
    with metrics.api_in_flight.track_inprogress(), metrics.api_request_duration.time():
        response = await call_next(request)
    metrics.api_requests.labels(request.method, str(response.status_code)).inc()
    size = response.headers.get("content-length")
    if size is not None:
        metrics.api_response_bytes.observe(int(size))
    return response
