"""Tests for quote_keeper.core.metrics."""

from datetime import datetime, timezone

from prometheus_client import CollectorRegistry

from quote_keeper.core.metrics import Metrics, PollerStats


class TestMetrics:
    def test_fresh_stats(self):
        assert Metrics().poller_stats() == PollerStats()

    def test_private_registries_do_not_clash(self):
        first, second = Metrics(), Metrics()
        first.poll_cycles.inc()

        assert first.poller_stats().cycles == 1
        assert second.poller_stats().cycles == 0

    def test_explicit_registry(self):
        registry = CollectorRegistry()
        metrics = Metrics(registry)
        metrics.quotes_stored.inc(3)
        assert registry.get_sample_value("quote_keeper_quotes_stored_total") == 3.0

    def test_stats_read_back(self):
        metrics = Metrics()
        metrics.poll_cycles.inc(4)
        metrics.poll_failures.labels("fetch").inc()
        metrics.poll_failures.labels("store").inc(2)
        metrics.quotes_stored.inc(10)
        metrics.last_success.set(1617295200.0)

        assert metrics.poller_stats() == PollerStats(
            cycles=4,
            fetch_failures=1,
            store_failures=2,
            quotes_stored=10,
            last_success=datetime(2021, 4, 1, 16, 40, tzinfo=timezone.utc),
        )

    def test_render_lists_every_family(self):
        text = Metrics().render().decode()
        for name in (
            "quote_keeper_poll_cycles_total",
            'quote_keeper_poll_failures_total{stage="fetch"}',
            "quote_keeper_client_in_flight_requests",
            "quote_keeper_request_duration_seconds_bucket",
            "quote_keeper_response_size_bytes_count",
        ):
            assert name in text
