# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metrics collector mirroring dict-based counters into Prometheus.

Usage:
    >>> from stock_reservation.observability.collector import get_metrics_collector
    >>> collector = get_metrics_collector()
    >>> collector.inc_counter('stock_reservation_reservations_total',
    ...                       labels={'outcome': 'reserved'})
    >>> metrics = collector.get_metrics()

Thread Safety:
    All operations are thread-safe. Uses RLock for reentrant locking.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from prometheus_client import REGISTRY, CollectorRegistry, Counter

from .constants import (
    CANCELLATIONS_TOTAL,
    CHECKOUTS_TOTAL,
    CLEANUP_FAILURES_TOTAL,
    RECONCILIATIONS_TOTAL,
    RESERVATIONS_TOTAL,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricDefinition:
    """Definition for a counter that can be instantiated."""

    name: str
    description: str
    label_names: tuple[str, ...] = ()


METRIC_DEFINITIONS: dict[str, MetricDefinition] = {
    d.name: d
    for d in (
        MetricDefinition(RESERVATIONS_TOTAL, "Reserve calls by outcome", ("outcome",)),
        MetricDefinition(CANCELLATIONS_TOTAL, "Cancel calls by outcome", ("outcome",)),
        MetricDefinition(CHECKOUTS_TOTAL, "Checkout calls by outcome", ("outcome",)),
        MetricDefinition(
            CLEANUP_FAILURES_TOTAL,
            "Holds left in the cache after a committed sale",
        ),
        MetricDefinition(RECONCILIATIONS_TOTAL, "Reserved counter reconciliations"),
    )
}


class MetricsCollector:
    """
    Counter collector with a dict view for JSON export and a Prometheus view
    for scraping.

    Example:
        >>> collector = MetricsCollector(registry=CollectorRegistry())
        >>> collector.inc_counter(CHECKOUTS_TOTAL, labels={'outcome': 'completed'})
        >>> collector.get_counter(CHECKOUTS_TOTAL, labels={'outcome': 'completed'})
        1
    """

    def __init__(
        self,
        enable_prometheus: bool = True,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Whether to mirror counters into Prometheus
            registry: Optional Prometheus CollectorRegistry (defaults to the global one)
        """
        self._enable_prometheus = enable_prometheus
        self._registry = registry if registry is not None else REGISTRY

        self._counters: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )
        self._lock = threading.RLock()
        self._prom_counters: dict[str, Counter] = {}

    def _labels_to_key(self, labels: dict[str, str] | None) -> str:
        """Convert labels dict to a stable string key."""
        if not labels:
            return ""
        return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    def _get_or_create_prom_counter(self, name: str) -> Counter | None:
        if not self._enable_prometheus:
            return None

        if name not in self._prom_counters:
            defn = METRIC_DEFINITIONS.get(name) or MetricDefinition(
                name, f"Dynamic counter: {name}"
            )
            try:
                self._prom_counters[name] = Counter(
                    name,
                    defn.description,
                    list(defn.label_names),
                    registry=self._registry,
                )
            except ValueError as e:
                # Already registered by another collector on the same registry
                logger.warning(f"Failed to create Prometheus counter {name}: {e}")
                return None

        return self._prom_counters[name]

    def inc_counter(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError("Counter increment must be non-negative")

        with self._lock:
            self._counters[name][self._labels_to_key(labels)] += value
            prom_counter = self._get_or_create_prom_counter(name)

        if prom_counter is not None:
            if labels:
                prom_counter.labels(**labels).inc(value)
            else:
                prom_counter.inc(value)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            return self._counters[name][self._labels_to_key(labels)]

    def get_metrics(self) -> dict[str, Any]:
        """Return all counters as a JSON-serializable dict."""
        with self._lock:
            return {
                "counters": {
                    name: dict(values) for name, values in self._counters.items()
                }
            }

    def reset(self) -> None:
        """Reset the dict view. Prometheus counters are monotonic and kept."""
        with self._lock:
            self._counters.clear()


_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide collector bound to the default Prometheus registry."""
    global _collector
    with _collector_lock:
        if _collector is None:
            _collector = MetricsCollector()
        return _collector


def reset_metrics_collector() -> None:
    """Drop the process-wide collector's dict view (intended for tests)."""
    with _collector_lock:
        if _collector is not None:
            _collector.reset()
