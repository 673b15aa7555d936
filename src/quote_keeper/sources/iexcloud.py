"""IEX Cloud price source: the batch quote endpoint over httpx.

One GET per poll cycle returns the latest quote for every requested symbol:

    GET {batch_endpoint}?types=quote&symbols=fb,goog&token=...

    {"FB": {"quote": {"symbol": "FB", "latestPrice": 123.45,
                      "latestUpdate": 1617295200123}}, ...}
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import httpx

from quote_keeper.core.config import DEFAULT_BATCH_ENDPOINT, SourceConfig
from quote_keeper.core.exceptions import ConfigError, SourceUnavailableError
from quote_keeper.core.metrics import Metrics
from quote_keeper.core.models import Quote, normalize_symbols
from quote_keeper.sources.provider import QuoteAdapter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class IEXCloudAdapter:
    """Transforms an IEX Cloud batch response into Quote records."""

    def adapt(self, raw_data: Any) -> list[Quote]:
        """Parse the batch response body.

        Parameters
        ----------
        raw_data : dict
            Decoded JSON, keyed by upper-case symbol.

        Returns
        -------
        list[Quote]
            One quote per symbol in the response, in response order.

        Raises
        ------
        SourceUnavailableError
            If the body is not an object, any symbol lacks its ``quote``
            key, or a quote is missing fields.
        """
        if not isinstance(raw_data, dict):
            raise SourceUnavailableError(
                f"Expected a JSON object, got {type(raw_data).__name__}",
            )

        quotes: list[Quote] = []
        for symbol, types in raw_data.items():
            raw_quote = types.get("quote") if isinstance(types, dict) else None
            if raw_quote is None:
                raise SourceUnavailableError(
                    f"'quote' key for symbol {symbol!r} not found",
                    context={"symbol": symbol},
                )
            try:
                quotes.append(
                    Quote(
                        symbol=raw_quote["symbol"],
                        price=float(raw_quote["latestPrice"]),
                        timestamp=datetime.fromtimestamp(
                            int(raw_quote["latestUpdate"]) / 1000, tz=timezone.utc
                        ),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise SourceUnavailableError(
                    f"Malformed quote for symbol {symbol!r}: {e}",
                    context={"symbol": symbol},
                ) from e

        return quotes


class IEXCloudPriceSource:
    """Fetches current quotes from IEX Cloud's batch endpoint.

    Every call is bounded by ``timeout`` seconds end to end, so a slow
    upstream cannot stall the poll loop.

    Parameters
    ----------
    token : str
        IEX Cloud API token. Required.
    batch_endpoint : str
        Full URL of the batch endpoint. Must be http(s).
    timeout : float
        Per-call deadline in seconds. Default: 10.0.
    adapter : QuoteAdapter | None
        Custom adapter instance. Uses default if None.
    client : httpx.AsyncClient | None
        Shared HTTP client. If None, the source owns and closes its own.
    metrics : Metrics | None
        When set, every request is counted and timed.
    """

    def __init__(
        self,
        token: str,
        batch_endpoint: str = DEFAULT_BATCH_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
        adapter: QuoteAdapter | None = None,
        client: httpx.AsyncClient | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        if not token:
            raise ConfigError(
                "IEX Cloud API token not set",
                context={"field": "token", "value": None},
            )
        if timeout <= 0:
            raise ConfigError(
                f"timeout must be > 0, got {timeout}",
                context={"field": "timeout", "value": timeout},
            )
        self._endpoint = _validate_endpoint(batch_endpoint)
        self._token = token
        self._timeout = timeout
        self._adapter = adapter or IEXCloudAdapter()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._metrics = metrics

    @property
    def batch_endpoint(self) -> str:
        return str(self._endpoint)

    @property
    def timeout(self) -> float:
        return self._timeout

    async def __aenter__(self) -> IEXCloudPriceSource:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this source created it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch(self, symbols: Sequence[str]) -> list[Quote]:
        wanted = normalize_symbols(symbols)
        if not wanted:
            raise SourceUnavailableError("empty symbols")

        params = {
            "types": "quote",
            "token": self._token,
            "symbols": ",".join(wanted),
        }
        context = {"url": str(self._endpoint)}

        try:
            resp = await asyncio.wait_for(
                self._get(params),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(
                f"IEX Cloud request timed out after {self._timeout}s",
                context=context,
            ) from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(
                f"IEX Cloud request failed: {e}", context=context
            ) from e

        if resp.status_code != 200:
            raise SourceUnavailableError(
                f"IEX Cloud HTTP {resp.status_code}: {resp.text[:200]}",
                context={**context, "status_code": resp.status_code},
            )

        try:
            raw = resp.json()
        except ValueError as e:
            raise SourceUnavailableError(
                f"Decoding IEX Cloud response: {e}", context=context
            ) from e

        quotes = self._adapter.adapt(raw)
        logger.debug("Fetched %d quotes for %d symbols", len(quotes), len(wanted))
        return quotes

    async def _get(self, params: dict[str, str]) -> httpx.Response:
        if self._metrics is None:
            return await self._client.get(self._endpoint, params=params)
        m = self._metrics
        m.client_requests.inc()
        with m.client_in_flight.track_inprogress(), m.client_request_duration.time():
            return await self._client.get(self._endpoint, params=params)


def _validate_endpoint(endpoint: str) -> httpx.URL:
    try:
        url = httpx.URL(endpoint)
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigError(
            f"Batch endpoint {endpoint!r}: {e}",
            context={"field": "batch_endpoint", "value": endpoint},
        ) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigError(
            f"Batch endpoint {endpoint!r} must be an absolute http(s) URL",
            context={"field": "batch_endpoint", "value": endpoint},
        )
    return url


def create_source(
    config: SourceConfig, metrics: Metrics | None = None
) -> IEXCloudPriceSource:
    """Create the quote source described by configuration.

    Requests are instrumented only when ``config.metrics`` is enabled.
    """
    return IEXCloudPriceSource(
        token=config.token,
        batch_endpoint=config.batch_endpoint,
        timeout=config.timeout,
        metrics=metrics if config.metrics else None,
    )
