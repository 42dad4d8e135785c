# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Observability for the stock reservation engine.

Classes:
    MetricsCollector: Counter collector with dict and Prometheus views.

Functions:
    get_metrics_collector: Get the global metrics collector singleton.
    reset_metrics_collector: Reset the global metrics collector's dict view.
"""

from .collector import (
    METRIC_DEFINITIONS,
    MetricDefinition,
    MetricsCollector,
    get_metrics_collector,
    reset_metrics_collector,
)
from .constants import (
    CANCELLATIONS_TOTAL,
    CHECKOUTS_TOTAL,
    CLEANUP_FAILURES_TOTAL,
    METRIC_PREFIX,
    RECONCILIATIONS_TOTAL,
    RESERVATIONS_TOTAL,
)

__all__ = [
    "CANCELLATIONS_TOTAL",
    "CHECKOUTS_TOTAL",
    "CLEANUP_FAILURES_TOTAL",
    "METRIC_DEFINITIONS",
    "METRIC_PREFIX",
    "RECONCILIATIONS_TOTAL",
    "RESERVATIONS_TOTAL",
    "MetricDefinition",
    "MetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
