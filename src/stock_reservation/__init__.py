# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Stock Reservation - Two-phase reserve/checkout coordination for inventory.

This library places short-lived holds on product stock in a fast shared
cache and turns them into durable sales inside a database transaction.

Key Features:
    - Per-user holds with automatic TTL expiry
    - O(1) availability checks from an aggregate reserved counter
    - Transactional checkout that can never oversell durable stock
    - Multiple hold stores (memory, Redis)
    - Counter reconciliation for holds that expired on their own

Quick Start:
    >>> from stock_reservation import create_reservation_engine
    >>>
    >>> engine = create_reservation_engine(
    ...     backend="redis",
    ...     database_url="postgresql+asyncpg://shop@db/shop",
    ... )
    >>> async with engine:
    ...     product = await engine.create_product(
    ...         {"name": "Lamp", "price": "19.99", "total_stock": 5}
    ...     )
    ...     if await engine.reserve(product.id, "alice", 2):
    ...         await engine.checkout(product.id, "alice")

Main Exports:
    - ReservationEngine, create_reservation_engine: Core coordination components
    - StockLedger: Durable product and order store
    - MemoryReservationStore, RedisReservationStore: Hold stores
    - ReservationConfig: Configuration options

Note: RedisReservationStore requires the 'redis' extra. Install with:
    pip install stock-reservation[redis]

Version: 1.0.0
"""

__version__ = "1.0.0"

from typing import TYPE_CHECKING

from .backends import (
    BaseReservationStore,
    HealthCheckResult,
    MemoryReservationStore,
)
from .config import ReservationConfig
from .engine import ReservationEngine, create_reservation_engine
from .exceptions import (
    BackendConnectionError,
    BackendOperationError,
    ConfigurationError,
    InsufficientStockError,
    ProductNotFoundError,
    StockReservationError,
    ValidationError,
)
from .ledger import StockLedger
from .models import OrderRead, OrderStatus, ProductCreate, ProductRead, StockStatus

# Lazy import for optional redis store
if TYPE_CHECKING:
    from .backends import RedisReservationStore

__all__ = [
    "BackendConnectionError",
    "BackendOperationError",
    # Stores
    "BaseReservationStore",
    "ConfigurationError",
    "HealthCheckResult",
    "InsufficientStockError",
    "MemoryReservationStore",
    # Models
    "OrderRead",
    "OrderStatus",
    "ProductCreate",
    "ProductNotFoundError",
    "ProductRead",
    "RedisReservationStore",  # Lazy loaded - requires redis extra
    "ReservationConfig",
    # Engine
    "ReservationEngine",
    # Ledger
    "StockLedger",
    # Exceptions
    "StockReservationError",
    "StockStatus",
    "ValidationError",
    "create_reservation_engine",
]


def __getattr__(name: str) -> type:
    """Lazy import for optional redis store."""
    if name == "RedisReservationStore":
        from .backends import RedisReservationStore

        return RedisReservationStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
