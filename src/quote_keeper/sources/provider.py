"""Quote source protocols: the interface the poller depends on.

Architecture
------------
    Upstream API → QuoteAdapter → list[Quote] → PriceSource → Poller

- **PriceSource** is the poller-facing protocol: one current quote per
  requested symbol, or an error for the whole call.
- **QuoteAdapter** turns one upstream response body into ``Quote`` records.
  A new upstream means one adapter plus one source class.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from quote_keeper.core.models import Quote


@runtime_checkable
class QuoteAdapter(Protocol):
    """Transforms a raw upstream payload into Quote records.

    Raises
    ------
    SourceUnavailableError
        If any part of the payload cannot be decoded. Adapters never
        return a partial list.
    """

    def adapt(self, raw_data: Any) -> list[Quote]: ...


@runtime_checkable
class PriceSource(Protocol):
    """Fetches the current quote for each of a set of symbols."""

    async def fetch(self, symbols: Sequence[str]) -> list[Quote]:
        """Return one quote per symbol.

        Fails as a unit with ``SourceUnavailableError`` on network errors,
        timeouts, bad status codes, or undecodable responses. The result
        is not guaranteed to be ordered or de-duplicated by symbol.
        """
        ...

    async def close(self) -> None: ...
