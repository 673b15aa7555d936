"""Quote history: the storage contract and its two engines."""

from quote_keeper.history.memory import ReadWriteLock, VolatileStore
from quote_keeper.history.sqlite import DurableStore
from quote_keeper.history.store import QuoteStore, create_store

__all__ = [
    "DurableStore",
    "QuoteStore",
    "ReadWriteLock",
    "VolatileStore",
    "create_store",
]
