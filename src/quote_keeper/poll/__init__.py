"""Poll a quote source at a fixed interval and archive the results."""

from quote_keeper.core.metrics import PollerStats
from quote_keeper.poll.poller import DEFAULT_POLL_INTERVAL, Poller

__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "Poller",
    "PollerStats",
]
