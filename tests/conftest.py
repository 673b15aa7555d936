"""Shared pytest fixtures for quote-keeper."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from quote_keeper.core.config import QuoteKeeperConfig, SourceConfig, StorageConfig
from quote_keeper.core.models import Quote, StorageBackend


BASE_TIME = datetime(2021, 4, 1, 14, 30, 0, tzinfo=timezone.utc)


class FakeSource:
    """PriceSource stand-in that replays canned batches or raises."""

    def __init__(self, batches=None, error=None):
        self._batches = list(batches or [])
        self.error = error
        self.calls: list[list[str]] = []
        self.closed = False

    async def fetch(self, symbols):
        self.calls.append(list(symbols))
        if self.error is not None:
            raise self.error
        if self._batches:
            return self._batches.pop(0)
        return []

    async def close(self):
        self.closed = True


@pytest.fixture
def make_quote():
    """Factory for Quote with overridable defaults.

    Successive quotes without an explicit timestamp are one second apart.
    """
    counter = {"n": 0}

    def _make(symbol="fb", price=123.45, timestamp=None):
        if timestamp is None:
            timestamp = BASE_TIME + timedelta(seconds=counter["n"])
            counter["n"] += 1
        return Quote(symbol=symbol, price=price, timestamp=timestamp)

    return _make


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def make_config(tmp_path):
    """Factory for a QuoteKeeperConfig pointed at tmp_path."""

    def _make(backend=StorageBackend.MEMORY, **storage_overrides):
        storage = dict(
            backend=backend,
            sqlite_path=str(tmp_path / "stonks.sqlite"),
        )
        storage.update(storage_overrides)
        return QuoteKeeperConfig(
            source=SourceConfig(token="test-token"),
            storage=StorageConfig(**storage),
        )

    return _make


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo configure_logging() so caplog sees package records again."""
    yield
    logger = logging.getLogger("quote_keeper")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_source():
    """Factory for FakeSource."""

    def _make(batches=None, error=None):
        return FakeSource(batches=batches, error=error)

    return _make
