"""Observability layer - logging, metrics, and tracing."""

from social_proxy.observability.logging import setup_logging
from social_proxy.observability.metrics import MetricsCollector, get_metrics
from social_proxy.observability.tracing import get_tracer, setup_tracing

__all__ = ["setup_logging", "MetricsCollector", "get_metrics", "setup_tracing", "get_tracer"]
