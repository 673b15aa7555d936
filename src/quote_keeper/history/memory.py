"""Volatile in-memory quote history.

Suits deployments that only care about prices while the service runs. Memory
grows with every poll cycle; nothing is ever evicted.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from itertools import islice

from quote_keeper.core.exceptions import NotFoundError, PartialWriteError
from quote_keeper.core.models import DEFAULT_SYMBOLS, Quote, QuoteBatch, normalize_symbols


class ReadWriteLock:
    """Shared-read / exclusive-write lock for coroutines.

    Readers never block each other. A writer waits for active readers to
    finish, and while it waits no new reader is admitted.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writing(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and not self._writers_waiting
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and not self._readers
                )
            finally:
                self._writers_waiting -= 1
                # wake readers held back by a writer that was cancelled
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class VolatileStore:
    """In-memory implementation of QuoteStore.

    Only symbols in the tracked set can be written. Each symbol's history is
    kept newest first, so reads are a prefix slice. Reads return copies.

    Parameters
    ----------
    symbols : Iterable[str]
        Tracked symbols. Also the default set for ``query_batch``.
    logger : logging.Logger | None
        Logger to report through. Defaults to this module's logger.
    """

    def __init__(
        self,
        symbols: Iterable[str] = DEFAULT_SYMBOLS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._symbols = normalize_symbols(symbols)
        self._quotes: dict[str, deque[Quote]] = {s: deque() for s in self._symbols}
        self._lock = ReadWriteLock()
        self._log = logger or logging.getLogger(__name__)

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    async def initialize(self) -> None:
        self._log.debug("Tracking %d symbols in memory", len(self._symbols))

    async def close(self) -> None:
        """Nothing to release."""

    async def health_check(self) -> bool:
        return True

    async def append(self, quotes: Sequence[Quote]) -> None:
        """Prepend each quote to its symbol's history.

        Quotes for untracked symbols are skipped; after the whole batch is
        processed a single PartialWriteError lists every one of them.
        """
        rejected: list[str] = []
        stored = 0
        async with self._lock.write():
            for quote in quotes:
                history = self._quotes.get(quote.symbol)
                if history is None:
                    rejected.append(quote.symbol)
                    continue
                history.appendleft(quote)
                stored += 1

        if rejected:
            raise PartialWriteError(
                "symbols not tracked: " + ", ".join(repr(s) for s in rejected),
                context={"rejected": rejected, "stored": stored},
            )

    async def query(self, symbol: str, last: int) -> list[Quote]:
        key = symbol.strip().lower()
        async with self._lock.read():
            history = self._quotes.get(key)
            if not history:
                raise NotFoundError(
                    f"quotes for {symbol!r} not found",
                    context={"symbols": [key]},
                )
            return _latest(history, last)

    async def query_batch(self, symbols: Sequence[str], last: int) -> QuoteBatch:
        wanted = normalize_symbols(symbols) or list(self._symbols)
        batch: QuoteBatch = {}
        async with self._lock.read():
            for symbol in wanted:
                history = self._quotes.get(symbol)
                if history:
                    batch[symbol] = _latest(history, last)

        if not batch:
            raise NotFoundError(
                "no quotes found for " + ", ".join(wanted),
                context={"symbols": wanted},
            )
        return batch


def _latest(history: deque[Quote], last: int) -> list[Quote]:
    """The newest ``last`` quotes; counts below 1 mean 1."""
    # islice() rejects a stop above sys.maxsize
    return list(islice(history, min(max(last, 1), len(history))))
