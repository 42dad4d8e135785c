# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metric name constants following Prometheus naming conventions.

All metric names use the `stock_reservation_` prefix.

Naming Conventions:
    - Counter metrics end with `_total`

Label Best Practices:
    To prevent label cardinality explosion, use only:
    - `outcome` - Operation result (enum: reserved, rejected, ...)

    NEVER use:
    - `user_id` - Unique per user (unbounded!)
    - `product_id` - Grows with the catalogue (unbounded!)
"""


METRIC_PREFIX = "stock_reservation"
"""Prefix for all Prometheus metrics in this library."""


RESERVATIONS_TOTAL = f"{METRIC_PREFIX}_reservations_total"
"""Reserve calls by outcome (reserved, insufficient_stock)."""

CANCELLATIONS_TOTAL = f"{METRIC_PREFIX}_cancellations_total"
"""Cancel calls by outcome (cancelled, not_held)."""

CHECKOUTS_TOTAL = f"{METRIC_PREFIX}_checkouts_total"
"""Checkout calls by outcome (completed, no_hold, in_progress, insufficient_stock, product_missing)."""

CLEANUP_FAILURES_TOTAL = f"{METRIC_PREFIX}_cleanup_failures_total"
"""Holds left behind because removal failed after a committed sale."""

RECONCILIATIONS_TOTAL = f"{METRIC_PREFIX}_reconciliations_total"
"""Reserved counter reconciliations performed."""


# Outcome label values
OUTCOME_RESERVED = "reserved"
OUTCOME_INSUFFICIENT_STOCK = "insufficient_stock"
OUTCOME_CANCELLED = "cancelled"
OUTCOME_NOT_HELD = "not_held"
OUTCOME_COMPLETED = "completed"
OUTCOME_NO_HOLD = "no_hold"
OUTCOME_IN_PROGRESS = "in_progress"
OUTCOME_PRODUCT_MISSING = "product_missing"
