"""Quote sources: the poller-facing protocol and the IEX Cloud client."""

from quote_keeper.sources.iexcloud import (
    DEFAULT_TIMEOUT,
    IEXCloudAdapter,
    IEXCloudPriceSource,
    create_source,
)
from quote_keeper.sources.provider import PriceSource, QuoteAdapter

__all__ = [
    "DEFAULT_TIMEOUT",
    "IEXCloudAdapter",
    "IEXCloudPriceSource",
    "PriceSource",
    "QuoteAdapter",
    "create_source",
]
