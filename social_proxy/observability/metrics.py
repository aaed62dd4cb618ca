"""
Prometheus metrics for the social feed proxy.

Exposes:
- The in-process social counters (see social_proxy.social.metrics) through a
  custom collector, so the JSON snapshot and Prometheus agree
- Latency histograms for bridge discovery and upstream feed fetches
- In-memory store sizes (rate buckets, caches, in-flight requests)

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging
from typing import Callable, Iterator

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Gauge,
    Histogram,
    start_http_server,
)
from prometheus_client.core import CounterMetricFamily
from prometheus_client.registry import Collector

from social_proxy.config.settings import get_settings
from social_proxy.social.metrics import SocialMetrics, get_social_metrics

logger = logging.getLogger(__name__)

STORE_NAMES = ("rate_buckets", "proxy_cache", "discovery_cache", "in_flight")

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0)


class SocialCountersCollector(Collector):
    """
    Render SocialMetrics counters as Prometheus counter families.

    Counters sharing a name may carry different label sets (e.g. the global
    rate limit has no platform label); missing labels are exported as "".
    """

    def __init__(self, source: Callable[[], SocialMetrics] = get_social_metrics):
        self._source = source

    def collect(self) -> Iterator[CounterMetricFamily]:
        grouped: dict[str, list[tuple[dict[str, str], int]]] = {}
        for name, labels, value in self._source().iter_counters():
            grouped.setdefault(name, []).append((dict(labels), value))

        for name in sorted(grouped):
            samples = grouped[name]
            label_names = sorted({key for labels, _ in samples for key in labels})
            family = CounterMetricFamily(
                name,
                f"Social feed proxy counter {name}",
                labels=label_names,
            )
            for labels, value in samples:
                family.add_metric([labels.get(key, "") for key in label_names], value)
            yield family


class MetricsCollector:
    """
    Prometheus metrics collector for the social feed proxy.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_upstream_fetch("twitter", "success", 0.42)
        metrics.record_discovery("instagram", "success", 3.1)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """Initialize Prometheus metrics."""
        self.registry = registry

        self.upstream_fetch_latency = Histogram(
            "social_proxy_upstream_fetch_latency_seconds",
            "Time to fetch a feed from the upstream bridge",
            ["platform", "outcome"],  # outcome: success, error
            buckets=LATENCY_BUCKETS,
            registry=registry,
        )

        self.discovery_latency = Histogram(
            "social_discovery_latency_seconds",
            "Time to discover and probe a bridge feed",
            ["platform", "outcome"],  # outcome: success, no_bridge, failed
            buckets=LATENCY_BUCKETS,
            registry=registry,
        )

        self.store_size = Gauge(
            "social_proxy_store_size",
            "Number of entries in in-memory proxy stores",
            ["store"],
            registry=registry,
        )

        self.counters_collector = SocialCountersCollector()
        registry.register(self.counters_collector)

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=self.registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_upstream_fetch(self, platform: str, outcome: str, latency: float) -> None:
        self.upstream_fetch_latency.labels(platform=platform, outcome=outcome).observe(latency)

    def record_discovery(self, platform: str, outcome: str, latency: float) -> None:
        self.discovery_latency.labels(platform=platform, outcome=outcome).observe(latency)

    def track_store_sizes(self, source: Callable[[], dict[str, int]]) -> None:
        """
        Read store size gauges from ``source`` on every scrape.

        Args:
            source: Returns a mapping of store name to current entry count
        """
        for store in STORE_NAMES:
            self.store_size.labels(store=store).set_function(
                lambda store=store: source().get(store, 0)
            )


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
