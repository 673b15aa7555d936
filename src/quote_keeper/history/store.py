"""Storage contract shared by the poller (writer) and the read API (readers)."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from quote_keeper.core.config import StorageConfig
from quote_keeper.core.exceptions import ConfigError
from quote_keeper.core.models import DEFAULT_SYMBOLS, Quote, QuoteBatch, StorageBackend


@runtime_checkable
class QuoteStore(Protocol):
    """Append-only, per-symbol quote history.

    One writer (the poller) and any number of concurrent readers share an
    instance. Recency is insertion order, never the timestamp value.
    """

    async def initialize(self) -> None: ...

    async def append(self, quotes: Sequence[Quote]) -> None:
        """Persist quotes.

        Engines differ under failure: the volatile engine stores what it can
        and raises ``PartialWriteError``; the durable engine stores all or
        nothing and raises ``WriteTransactionError``.
        """
        ...

    async def query(self, symbol: str, last: int) -> list[Quote]:
        """Return up to ``last`` (at least 1) quotes, newest first.

        Raises ``NotFoundError`` if the symbol has no history.
        """
        ...

    async def query_batch(self, symbols: Sequence[str], last: int) -> QuoteBatch:
        """Return up to ``last`` quotes per symbol, newest first.

        An empty ``symbols`` means the store's default symbol set. Symbols
        without history are omitted; ``NotFoundError`` is raised only when
        nothing at all matched.
        """
        ...

    async def close(self) -> None:
        """Release resources. Safe to call more than once."""
        ...

    async def health_check(self) -> bool: ...


async def create_store(
    config: StorageConfig,
    symbols: Iterable[str] = DEFAULT_SYMBOLS,
    logger: logging.Logger | None = None,
) -> QuoteStore:
    """Create and initialize the storage engine selected by configuration."""
    from quote_keeper.history.memory import VolatileStore
    from quote_keeper.history.sqlite import DurableStore

    store: QuoteStore
    if config.backend == StorageBackend.MEMORY:
        store = VolatileStore(symbols, logger=logger)
    elif config.backend == StorageBackend.SQLITE:
        store = DurableStore(
            config.sqlite_path,
            symbols=symbols,
            fresh_start=config.fresh_start,
            max_idle_connections=config.max_idle_connections,
            conn_max_lifetime=config.conn_max_lifetime,
            logger=logger,
        )
    else:
        raise ConfigError(
            f"Unsupported storage backend: {config.backend}",
            context={"field": "backend", "value": str(config.backend)},
        )
    await store.initialize()
    return store
