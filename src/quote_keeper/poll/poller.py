"""Poller: fetch quotes from a PriceSource on a fixed interval and append
them to a QuoteStore until told to stop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from quote_keeper.core.exceptions import (
    PartialWriteError,
    SourceUnavailableError,
    StorageError,
)
from quote_keeper.core.metrics import Metrics, PollerStats
from quote_keeper.core.models import Quote, normalize_symbols
from quote_keeper.history.store import QuoteStore
from quote_keeper.sources.provider import PriceSource

DEFAULT_POLL_INTERVAL = 60.0


class Poller:
    """Continually retrieves quotes from a source and stores them.

    A single poller is the only writer to its store. Cycles never overlap:
    a tick that arrives while a cycle is still running is dropped.

    Failure policy: a failed fetch or append is logged and the cycle is
    abandoned. The loop keeps going and only ends when stopped or cancelled.

    Cancellation never interrupts an append. If the cycle is cancelled while
    its batch is being written, the write runs to completion and
    ``shutdown()`` waits for it and records its outcome.
    """

    def __init__(
        self,
        source: PriceSource,
        store: QuoteStore,
        logger: logging.Logger | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._log = logger or logging.getLogger(__name__)
        self.metrics = metrics or Metrics()
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()
        self._append: asyncio.Task[int] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stats(self) -> PollerStats:
        return self.metrics.poller_stats()

    async def poll_once(self, symbols: Sequence[str]) -> int:
        """Run one fetch/append cycle. Returns the number of quotes stored."""
        self.metrics.poll_cycles.inc()
        try:
            quotes = await self._source.fetch(symbols)
        except SourceUnavailableError as e:
            self.metrics.poll_failures.labels("fetch").inc()
            self._log.error("Polling quote source: %s", e)
            return 0

        self._log.debug("Received %d quotes", len(quotes))

        self._append = asyncio.create_task(
            self._timed_append(quotes), name="quote-append"
        )
        # Cancelling this cycle leaves the append running; shutdown() collects it.
        await asyncio.wait([self._append])
        return await self._collect_append()

    async def _collect_append(self) -> int:
        append, self._append = self._append, None
        try:
            stored = await append
        except StorageError as e:
            return self._store_failed(e)
        return self._stored(stored)

    async def _timed_append(self, quotes: Sequence[Quote]) -> int:
        with self.metrics.append_duration.time():
            await self._store.append(quotes)
        return len(quotes)

    def _stored(self, count: int) -> int:
        self.metrics.quotes_stored.inc(count)
        self.metrics.last_success.set_to_current_time()
        self._log.debug("Stored %d quotes", count)
        return count

    def _store_failed(self, e: StorageError) -> int:
        self.metrics.poll_failures.labels("store").inc()
        self._log.error("Updating history: %s", e)
        if isinstance(e, PartialWriteError):
            stored = e.context.get("stored", 0)
            self.metrics.quotes_stored.inc(stored)
            return stored
        return 0

    async def run(
        self,
        interval: float,
        symbols: Sequence[str],
        stop: asyncio.Event | None = None,
    ) -> None:
        """Poll until ``stop`` is set or the task is cancelled.

        The first cycle runs immediately. An empty symbol list returns at
        once; a non-positive interval falls back to DEFAULT_POLL_INTERVAL.
        """
        wanted = normalize_symbols(symbols)
        if not wanted:
            self._log.warning("No symbols to poll")
            return
        if interval <= 0:
            self._log.warning(
                "Invalid interval %r; using default %.0fs",
                interval,
                DEFAULT_POLL_INTERVAL,
            )
            interval = DEFAULT_POLL_INTERVAL
        if stop is None:
            stop = asyncio.Event()

        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        self._log.info("Polling %s every %.3gs", ",".join(wanted), interval)

        while not stop.is_set():
            try:
                await self.poll_once(wanted)
            except Exception:
                self._log.exception("Unexpected error during poll cycle")

            next_tick += interval
            now = loop.time()
            if next_tick < now:
                missed = int((now - next_tick) // interval) + 1
                self._log.warning("Poll cycle overran; skipping %d tick(s)", missed)
                next_tick += missed * interval

            if await _wait(stop, next_tick - now):
                break

        self._log.info("Stopping poller")

    def start(self, interval: float, symbols: Sequence[str]) -> asyncio.Task[None]:
        """Run the poll loop as a background task."""
        if self.running:
            raise RuntimeError("poller is already running")
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(
            self.run(interval, symbols, self._stop), name="quote-poller"
        )
        return self._task

    async def shutdown(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for it.

        If the loop has not exited within ``timeout`` seconds (an in-flight
        fetch can take up to the source's own timeout), it is cancelled. An
        append left running by a cancelled cycle is always waited for.
        """
        if self._task is not None:
            self._stop.set()
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                self._log.warning("Poller did not stop within %ss; cancelled", timeout)
            finally:
                self._task = None
        await self._finish_append()

    async def _finish_append(self) -> None:
        if self._append is not None:
            self._log.debug("Waiting for in-flight append")
            await self._collect_append()


async def _wait(stop: asyncio.Event, delay: float) -> bool:
    """Wait up to ``delay`` seconds for ``stop``. True if it was set."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(delay, 0.0))
    except asyncio.TimeoutError:
        return False
    return True
