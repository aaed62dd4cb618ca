"""
Process-wide counters and recent events for the social feed proxy.

Counters are keyed by metric name plus an optional label set. The snapshot
renders keys as ``name|k1=v1,k2=v2`` with labels sorted by name. Events are
kept in a bounded ring buffer (oldest dropped first) with string details
clamped to 180 characters.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

from social_proxy.social.schemas import MetricEvent

MAX_EVENTS = 200
MAX_DETAIL_LENGTH = 180

Scalar = str | int | float | bool
LabelSet = tuple[tuple[str, str], ...]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _label_value(value: Scalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _label_set(labels: Mapping[str, Scalar | None] | None) -> LabelSet:
    if not labels:
        return ()
    return tuple(sorted(
        (key, _label_value(value)) for key, value in labels.items() if value is not None
    ))


def metric_key(name: str, labels: Mapping[str, Scalar | None] | None = None) -> str:
    """Render a counter key, e.g. ``social_proxy_requests_total|platform=twitter``."""
    pieces = _label_set(labels)
    if not pieces:
        return name
    return f"{name}|{','.join(f'{k}={v}' for k, v in pieces)}"


def clamp_message(value: str) -> str:
    if len(value) <= MAX_DETAIL_LENGTH:
        return value
    return f"{value[:MAX_DETAIL_LENGTH - 3]}..."


class SocialMetrics:
    """
    Counter map plus recent-event ring buffer.

    Usage:
        metrics = get_social_metrics()
        metrics.increment("social_proxy_requests_total", {"platform": "twitter"})
        metrics.record_event("social_proxy_rate_limited", {"scope": "global"})
        metrics.snapshot()
    """

    def __init__(self, max_events: int = MAX_EVENTS) -> None:
        self.started_at = _utc_now_iso()
        self._counters: dict[tuple[str, LabelSet], int] = {}
        self._events: deque[MetricEvent] = deque(maxlen=max_events)

    def increment(
        self,
        name: str,
        labels: Mapping[str, Scalar | None] | None = None,
        amount: int = 1,
    ) -> None:
        key = (name, _label_set(labels))
        self._counters[key] = self._counters.get(key, 0) + amount

    def record_event(self, kind: str, details: Mapping[str, Scalar | None]) -> None:
        cleaned: dict[str, Scalar] = {}
        for key, value in details.items():
            if value is None:
                continue
            cleaned[key] = clamp_message(value) if isinstance(value, str) else value
        self._events.append(MetricEvent(at=_utc_now_iso(), kind=kind, details=cleaned))

    def get(self, name: str, labels: Mapping[str, Scalar | None] | None = None) -> int:
        return self._counters.get((name, _label_set(labels)), 0)

    def iter_counters(self) -> Iterator[tuple[str, LabelSet, int]]:
        """Yield ``(name, labels, value)`` for every counter."""
        for (name, labels), value in list(self._counters.items()):
            yield name, labels, value

    @property
    def recent_events(self) -> list[MetricEvent]:
        return list(self._events)

    def snapshot(self) -> dict[str, Any]:
        counters = {
            metric_key(name, dict(labels)): value
            for name, labels, value in self.iter_counters()
        }
        return {
            "started_at": self.started_at,
            "generated_at": _utc_now_iso(),
            "counters": dict(sorted(counters.items())),
            "recent_events": [event.to_dict() for event in self._events],
        }

    def reset(self) -> None:
        self._counters.clear()
        self._events.clear()


# Global metrics instance
_social_metrics: SocialMetrics | None = None


def get_social_metrics() -> SocialMetrics:
    """Get the process-wide social metrics recorder."""
    global _social_metrics
    if _social_metrics is None:
        _social_metrics = SocialMetrics()
    return _social_metrics
