"""Metrics collector — Prometheus counters and histograms for the pipeline.

- ``chat_notifier_notifications_total`` counter by outcome
  (filtered, suppressed, queued, delivered, failed)
- ``chat_notifier_delivery_attempts_total`` counter by result (ok, error)
- ``chat_notifier_delivery_duration_seconds`` histogram
- ``chat_notifier_batch_size`` histogram of items per flush
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "chat_notifier"

OUTCOMES = ("filtered", "suppressed", "queued", "delivered", "failed")

_BATCH_BUCKETS = (1, 2, 5, 10, 25, 50, 100, 250)


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`NotifierMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(
        self,
        name: str,
        doc: str,
        labels: tuple[str, ...] = (),
        buckets: tuple[float, ...] = Histogram.DEFAULT_BUCKETS,
    ) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry, buckets=buckets)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class NotifierMetrics:
    """High-level notifier metrics."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._notifications = self._collector.counter(
            f"{_PREFIX}_notifications",
            "Notifications by pipeline outcome",
            ("outcome",),
        )
        self._attempts = self._collector.counter(
            f"{_PREFIX}_delivery_attempts",
            "Webhook delivery attempts by result",
            ("result",),
        )
        self._delivery = self._collector.histogram(
            f"{_PREFIX}_delivery_duration_seconds",
            "Duration of a delivery including retries",
        )
        self._batch_size = self._collector.histogram(
            f"{_PREFIX}_batch_size",
            "Number of items per batch flush",
            buckets=_BATCH_BUCKETS,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    def record_outcome(self, outcome: str) -> None:
        """Count one notification reaching a terminal or queued state."""
        self._notifications.labels(outcome=outcome).inc()

    def record_attempt(self, *, ok: bool) -> None:
        """Count one HTTP attempt."""
        self._attempts.labels(result="ok" if ok else "error").inc()

    def observe_batch(self, size: int) -> None:
        """Record the size of a flushed batch."""
        self._batch_size.observe(size)

    @contextmanager
    def track_delivery(self) -> Iterator[None]:
        """Time a delivery (all attempts)."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._delivery.observe(time.perf_counter() - start)
