"""Prometheus instrumentation for the poller, the quote source client and the API.

A Metrics instance is the observability context handed to components at
construction. Each instance owns its CollectorRegistry, so several apps in one
process (or one test session) never collide on metric names.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Summary,
    generate_latest,
)

NAMESPACE = "quote_keeper"

# Exposition content type for the metrics endpoint.
METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


@dataclass(frozen=True)
class PollerStats:
    """Snapshot of the poller counters, as reported by the health endpoint."""

    cycles: int = 0
    fetch_failures: int = 0
    store_failures: int = 0
    quotes_stored: int = 0
    last_success: datetime | None = None


class Metrics:
    """Collectors for one running service.

    Parameters
    ----------
    registry : CollectorRegistry | None
        Registry to register the collectors on. A private one is created if
        None; pass ``prometheus_client.REGISTRY`` to use the global default.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        opts = {"namespace": NAMESPACE, "registry": self.registry}

        # Poller
        self.poll_cycles = Counter("poll_cycles", "Poll cycles started.", **opts)
        self.poll_failures = Counter(
            "poll_failures", "Poll cycles that failed, by stage.", ["stage"], **opts
        )
        for stage in ("fetch", "store"):
            self.poll_failures.labels(stage)
        self.quotes_stored = Counter(
            "quotes_stored", "Quotes appended to the history.", **opts
        )
        self.last_success = Gauge(
            "poll_last_success_timestamp_seconds",
            "Unix time of the last poll cycle whose batch was fully stored.",
            **opts,
        )
        self.append_duration = Summary(
            "append_duration_seconds", "Time spent appending one batch.", **opts
        )

        # Quote source HTTP client
        self.client_requests = Counter(
            "client_api_requests", "Requests made to the quote source.", **opts
        )
        self.client_in_flight = Gauge(
            "client_in_flight_requests", "Quote source requests in flight.", **opts
        )
        self.client_request_duration = Histogram(
            "client_request_duration_seconds", "Quote source request latency.", **opts
        )

        # API server
        self.api_requests = Counter(
            "api_requests", "Requests handled by the API.", ["method", "code"], **opts
        )
        self.api_in_flight = Gauge(
            "server_in_flight_requests", "API requests being served.", **opts
        )
        self.api_request_duration = Histogram(
            "request_duration_seconds", "API request latency.", **opts
        )
        self.api_response_bytes = Summary(
            "response_size_bytes", "API response body sizes.", **opts
        )

    def _sample(self, name: str, labels: dict[str, str] | None = None) -> float:
        return self.registry.get_sample_value(f"{NAMESPACE}_{name}", labels) or 0.0

    def poller_stats(self) -> PollerStats:
        """Read the poller counters back out of the registry."""
        last = self._sample("poll_last_success_timestamp_seconds")
        return PollerStats(
            cycles=int(self._sample("poll_cycles_total")),
            fetch_failures=int(self._sample("poll_failures_total", {"stage": "fetch"})),
            store_failures=int(self._sample("poll_failures_total", {"stage": "store"})),
            quotes_stored=int(self._sample("quotes_stored_total")),
            last_success=datetime.fromtimestamp(last, timezone.utc) if last else None,
        )

    def render(self) -> bytes:
        """Text exposition of every collector in the registry."""
        return generate_latest(self.registry)
