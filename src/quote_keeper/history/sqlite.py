"""Durable quote history in a single SQLite file.

Recency is the autoincrement ``id``, not the stored timestamp. Batch reads
rank each symbol's rows with a window function and keep the top N per
partition.

Uses aiosqlite. One connection writes; reads go through a small pool of
read-only connections so that, with WAL, a reader only ever sees committed
batches.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from quote_keeper.core.exceptions import (
    ConfigError,
    NotFoundError,
    StorageError,
    WriteTransactionError,
)
from quote_keeper.core.models import DEFAULT_SYMBOLS, Quote, QuoteBatch, normalize_symbols

DEFAULT_DATABASE_FILE = "stonks.sqlite"
DEFAULT_MAX_IDLE_CONNECTIONS = 2
# Largest value SQLite binds as an INTEGER; bigger counts are clamped to it.
MAX_QUERY_LIMIT = 2**63 - 1

_CREATE_QUOTES_TABLE = """
CREATE TABLE IF NOT EXISTS quotes (
    id INTEGER NOT NULL
        CONSTRAINT quotes_pk PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    price REAL NOT NULL,
    datetime TIMESTAMP NOT NULL
)"""

_CREATE_SYMBOL_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_quotes_symbol_id ON quotes (symbol, id)"
)

_INSERT_QUOTE = "INSERT INTO quotes (symbol, price, datetime) VALUES (?, ?, ?)"

_SELECT_QUOTES = """
SELECT symbol, price, datetime
  FROM quotes
  WHERE symbol = ?
  ORDER BY id DESC
  LIMIT ?"""

# Partition by symbol and keep the top N rows of each partition. The IN list
# is filled with one placeholder per requested symbol.
_SELECT_QUOTES_BATCH = """
WITH ranked AS (
  SELECT q.symbol, q.price, q.datetime,
         ROW_NUMBER() OVER (PARTITION BY q.symbol ORDER BY q.id DESC) AS rank
    FROM quotes q
)
SELECT r.symbol, r.price, r.datetime, r.rank
  FROM ranked r
  WHERE r.symbol IN ({placeholders})
    AND r.rank <= ?
  ORDER BY r.symbol, r.rank"""


def batch_query(symbol_count: int) -> str:
    """Return the batch statement with ``symbol_count`` IN placeholders."""
    return _SELECT_QUOTES_BATCH.format(placeholders=", ".join("?" * symbol_count))


class _ReaderPool:
    """Read-only connections kept open between queries.

    At most ``max_idle`` connections are kept idle; a connection older than
    ``max_lifetime`` seconds is closed instead of being reused.
    """

    def __init__(
        self, uri: str, max_idle: int, max_lifetime: float | None
    ) -> None:
        self._uri = uri
        self._max_idle = max_idle
        self._max_lifetime = max_lifetime
        self._idle: list[tuple[aiosqlite.Connection, float]] = []
        self._closed = False

    @property
    def idle(self) -> int:
        return len(self._idle)

    def _expired(self, opened: float, now: float) -> bool:
        return self._max_lifetime is not None and now - opened >= self._max_lifetime

    async def _open(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self._uri, uri=True)
        conn.row_factory = aiosqlite.Row
        return conn

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._closed:
            raise StorageError(
                "store is closed", context={"operation": "query", "table": "quotes"}
            )
        now = time.monotonic()
        conn: aiosqlite.Connection | None = None
        opened = now
        while self._idle:
            candidate, candidate_opened = self._idle.pop()
            if self._expired(candidate_opened, now):
                await candidate.close()
                continue
            conn, opened = candidate, candidate_opened
            break
        if conn is None:
            conn = await self._open()

        try:
            yield conn
        finally:
            if (
                self._closed
                or len(self._idle) >= self._max_idle
                or self._expired(opened, time.monotonic())
            ):
                await conn.close()
            else:
                self._idle.append((conn, opened))

    async def close(self) -> None:
        self._closed = True
        idle, self._idle = self._idle, []
        for conn, _ in idle:
            await conn.close()


class DurableStore:
    """SQLite implementation of QuoteStore.

    Accepts quotes for any symbol. Appends are one transaction: every quote
    in the batch is stored, or none is.

    Parameters
    ----------
    path : str
        Database file path. Must be a real file path, not ``:memory:``.
    symbols : Iterable[str]
        Default symbol set for ``query_batch``.
    fresh_start : bool
        Delete any existing database file on ``initialize()``. Default True.
    max_idle_connections : int
        Idle read connections kept open. Default 2.
    conn_max_lifetime : float | None
        Seconds after which a read connection is retired. None = unlimited.
    logger : logging.Logger | None
        Logger to report through. Defaults to this module's logger.
    """

    def __init__(
        self,
        path: str = DEFAULT_DATABASE_FILE,
        symbols: Iterable[str] = DEFAULT_SYMBOLS,
        fresh_start: bool = True,
        max_idle_connections: int = DEFAULT_MAX_IDLE_CONNECTIONS,
        conn_max_lifetime: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._path = _validate_path(path)
        self._symbols = normalize_symbols(symbols)
        self._fresh_start = fresh_start
        self._max_idle = max_idle_connections
        self._max_lifetime = conn_max_lifetime
        self._log = logger or logging.getLogger(__name__)
        self._db: aiosqlite.Connection | None = None
        self._readers: _ReaderPool | None = None
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    async def initialize(self) -> None:
        """Prepare the database file, open connections, create the schema."""
        try:
            if self._fresh_start:
                for suffix in ("", "-wal", "-shm"):
                    Path(f"{self._path}{suffix}").unlink(missing_ok=True)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
        except (OSError, aiosqlite.Error) as e:
            raise ConfigError(
                f"Cannot open database file {str(self._path)!r}: {e}",
                context={"field": "sqlite_path", "value": str(self._path)},
            ) from e

        try:
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute(_CREATE_QUOTES_TABLE)
            await self._db.execute(_CREATE_SYMBOL_INDEX)
            await self._db.commit()
        except Exception as e:
            await self.close()
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": str(self._path)},
            ) from e

        self._readers = _ReaderPool(
            self._path.resolve().as_uri() + "?mode=ro",
            self._max_idle,
            self._max_lifetime,
        )
        self._log.info(
            "Opened %s (%s)",
            self._path,
            "fresh" if self._fresh_start else "reusing existing history",
        )

    async def close(self) -> None:
        if self._readers is not None:
            await self._readers.close()
            self._readers = None
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Write path ---

    async def append(self, quotes: Sequence[Quote]) -> None:
        if not quotes:
            return
        db = self._require_open("insert")
        rows = [
            (q.symbol, q.price, q.timestamp.astimezone(timezone.utc).isoformat())
            for q in quotes
        ]

        async with self._write_lock:
            try:
                await db.executemany(_INSERT_QUOTE, rows)
                await db.commit()
            except BaseException as e:
                await db.rollback()
                if not isinstance(e, Exception):
                    raise
                raise WriteTransactionError(
                    f"Failed to insert {len(rows)} quotes: {e}",
                    context={"operation": "insert", "table": "quotes", "count": len(rows)},
                ) from e

        self._log.debug("Stored %d quotes", len(rows))

    # --- Read path ---

    async def query(self, symbol: str, last: int) -> list[Quote]:
        key = symbol.strip().lower()
        last = min(max(last, 1), MAX_QUERY_LIMIT)
        try:
            async with self._require_readers().connection() as db:
                async with db.execute(_SELECT_QUOTES, (key, last)) as cursor:
                    rows = await cursor.fetchall()
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to query quotes: {e}",
                context={"operation": "query", "table": "quotes", "symbol": key},
            ) from e

        if not rows:
            raise NotFoundError(
                f"quotes for {symbol!r} not found", context={"symbols": [key]}
            )
        return [self._row_to_quote(row) for row in rows]

    async def query_batch(self, symbols: Sequence[str], last: int) -> QuoteBatch:
        # Callers must end up with at least one symbol after defaulting.
        wanted = normalize_symbols(symbols) or list(self._symbols)
        last = min(max(last, 1), MAX_QUERY_LIMIT)
        try:
            async with self._require_readers().connection() as db:
                async with db.execute(
                    batch_query(len(wanted)), (*wanted, last)
                ) as cursor:
                    rows = await cursor.fetchall()
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to query quotes batch: {e}",
                context={"operation": "query", "table": "quotes", "symbols": wanted},
            ) from e

        batch: QuoteBatch = {}
        for row in rows:
            quote = self._row_to_quote(row)
            batch.setdefault(quote.symbol, []).append(quote)

        if not batch:
            raise NotFoundError(
                "no quotes found for " + ", ".join(wanted),
                context={"symbols": wanted},
            )
        return batch

    # --- Helpers ---

    def _require_open(self, operation: str) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "store is not initialized or already closed",
                context={"operation": operation, "table": "quotes"},
            )
        return self._db

    def _require_readers(self) -> _ReaderPool:
        if self._readers is None:
            raise StorageError(
                "store is not initialized or already closed",
                context={"operation": "query", "table": "quotes"},
            )
        return self._readers

    @staticmethod
    def _row_to_quote(row: aiosqlite.Row) -> Quote:
        # Stored in UTC; handed back in local time. Aware datetimes compare
        # equal across zones.
        return Quote(
            symbol=row["symbol"],
            price=row["price"],
            timestamp=datetime.fromisoformat(row["datetime"]).astimezone(),
        )


def _validate_path(path: str) -> Path:
    if not path or path == ":memory:" or path.startswith("file:"):
        raise ConfigError(
            f"Invalid database file path: {path!r}",
            context={"field": "sqlite_path", "value": path},
        )
    p = Path(path)
    if p.is_dir():
        raise ConfigError(
            f"Database path is a directory: {path!r}",
            context={"field": "sqlite_path", "value": path},
        )
    return p
