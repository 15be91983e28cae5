"""Metrics — Prometheus metrics collection."""

from __future__ import annotations

from chat_notifier.metrics.collector import MetricsCollector, NotifierMetrics

__all__ = ["MetricsCollector", "NotifierMetrics"]
