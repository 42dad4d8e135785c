# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Hold store implementations for the reservation engine.

This module provides the abstract base class and concrete implementations
for the cache that keeps reservation holds and reserved counters.

Available stores:
- BaseReservationStore: Abstract base class defining the store interface
- MemoryReservationStore: In-memory store for tests and single-process use
- RedisReservationStore: Redis-based store for distributed deployments (requires redis extra)

Supporting types:
- HealthCheckResult: Structured result from health checks
- validate_product_id, validate_user_id, validate_quantity: Argument checks

Note: RedisReservationStore is lazily imported to avoid requiring the redis
package when only using MemoryReservationStore.
"""

from typing import TYPE_CHECKING, cast

from stock_reservation.backends.base import (
    BaseReservationStore,
    HealthCheckResult,
    validate_product_id,
    validate_quantity,
    validate_user_id,
)
from stock_reservation.backends.memory import MemoryReservationStore

if TYPE_CHECKING:
    from stock_reservation.backends.redis import RedisReservationStore

__all__ = [
    "BaseReservationStore",
    "HealthCheckResult",
    "MemoryReservationStore",
    "RedisReservationStore",
    "validate_product_id",
    "validate_quantity",
    "validate_user_id",
]


def __getattr__(name: str) -> type:
    """Lazy import for optional redis store."""
    if name == "RedisReservationStore":
        try:
            from stock_reservation.backends import redis as redis_module

            return cast(type, redis_module.RedisReservationStore)
        except ImportError as e:  # pragma: no cover
            raise ImportError(  # pragma: no cover
                f"'{name}' requires the 'redis' extra. "
                "Install with: pip install stock-reservation[redis]"
            ) from e
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
