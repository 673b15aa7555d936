"""Integration test fixtures: real SQLite I/O, IEX Cloud mocked with respx."""

from __future__ import annotations

import itertools
from pathlib import Path

import httpx
import pytest

from quote_keeper.history import DurableStore


# 2021-04-01T16:40:00Z in milliseconds
BASE_UPDATE_MS = 1617295200000


@pytest.fixture
def iex_batch():
    """Factory for an IEX Cloud batch body: ``iex_batch(fb=123.45, goog=2062.37)``."""

    def _make(**prices: float) -> dict:
        return {
            symbol.upper(): {
                "quote": {
                    "symbol": symbol.upper(),
                    "latestPrice": price,
                    "latestUpdate": BASE_UPDATE_MS,
                }
            }
            for symbol, price in prices.items()
        }

    return _make


@pytest.fixture
def ticking_iex(iex_batch):
    """respx side effect whose prices rise by 1.0 on every request."""
    counter = itertools.count(1)

    def _handler(request: httpx.Request) -> httpx.Response:
        n = float(next(counter))
        symbols = request.url.params["symbols"].split(",")
        return httpx.Response(200, json=iex_batch(**{s: n for s in symbols}))

    return _handler


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "stonks.sqlite")


@pytest.fixture
async def integration_store(db_path: str) -> DurableStore:
    """An initialized DurableStore for integration tests."""
    store = DurableStore(db_path, symbols=["fb", "goog"])
    await store.initialize()
    yield store
    await store.close()
