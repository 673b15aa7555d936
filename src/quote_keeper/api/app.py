"""FastAPI application factory.

The app owns the poller's lifetime: it is started after the store is ready
and stopped before the store is closed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from quote_keeper.api.deps import AppState, metrics_middleware
from quote_keeper.api.routes import metrics_router, router
from quote_keeper.core.config import QuoteKeeperConfig, load_config
from quote_keeper.core.exceptions import ConfigError, NotFoundError, QuoteKeeperError
from quote_keeper.core.metrics import Metrics
from quote_keeper.history.store import QuoteStore, create_store
from quote_keeper.poll.poller import Poller
from quote_keeper.sources.iexcloud import create_source
from quote_keeper.sources.provider import PriceSource

logger = logging.getLogger(__name__)

# Seconds to wait for the poller beyond one source timeout before cancelling.
_SHUTDOWN_GRACE = 1.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    store: QuoteStore | None = app.state._pending_store
    source: PriceSource | None = app.state._pending_source
    metrics: Metrics = app.state.metrics
    owns_store = store is None
    owns_source = source is None

    if store is None:
        store = await create_store(config.storage, config.poll.symbols)
    try:
        if source is None:
            source = create_source(config.source, metrics=metrics)
        poller = Poller(
            source,
            store,
            logger=logging.getLogger("quote_keeper.poll"),
            metrics=metrics,
        )
        poller.start(config.poll.interval, config.poll.symbols)
        app.state.app_state = AppState(
            config=config, store=store, poller=poller, metrics=metrics
        )

        yield

        logger.info("Shutting down ...")
        await poller.shutdown(timeout=config.source.timeout + _SHUTDOWN_GRACE)
    finally:
        if owns_source and source is not None:
            await source.close()
        if owns_store:
            await store.close()


def create_app(
    config: QuoteKeeperConfig | None = None,
    store: QuoteStore | None = None,
    source: PriceSource | None = None,
    metrics: Metrics | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``store`` and ``source`` replace the ones built from configuration; the
    caller keeps ownership and must close them. ``metrics`` defaults to a
    fresh Metrics with its own registry.
    """
    import quote_keeper

    app = FastAPI(
        title="quote-keeper API",
        description="Latest stock quotes per symbol",
        version=quote_keeper.__version__,
        lifespan=lifespan,
    )

    # Stash collaborators so lifespan can retrieve them
    app.state._pending_config = config
    app.state._pending_store = store
    app.state._pending_source = source
    app.state.metrics = metrics or Metrics()

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    if config is None or config.api.metrics:
        app.middleware("http")(metrics_middleware)

    app.include_router(router, prefix="/v1")
    app.include_router(metrics_router)

    # Exception handlers
    @app.exception_handler(QuoteKeeperError)
    async def quote_keeper_exception_handler(request: Request, exc: QuoteKeeperError):
        status_map = {
            NotFoundError: 404,
            ConfigError: 400,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
