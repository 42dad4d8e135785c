# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Exception classes for the stock reservation library.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from StockReservationError, making it easy to catch
all reservation-related exceptions with a single except clause.

Note that "not enough stock" and "nothing to cancel" are not exceptional:
the engine reports them as ``False``. InsufficientStockError only escapes
from the ledger, where it aborts the checkout transaction.
"""


class StockReservationError(Exception):
    """Base exception for all stock reservation errors.

    Example:
        try:
            await engine.reserve(product_id, user_id, quantity)
        except StockReservationError as e:
            logger.error(f"Reservation error: {e}")
    """

    pass


class ProductNotFoundError(StockReservationError):
    """Raised when a referenced product does not exist in the ledger.

    Attributes:
        product_id: The identifier of the product that was not found.

    Example:
        try:
            status = await engine.get_status(product_id)
        except ProductNotFoundError as e:
            raise HTTPException(status_code=404, detail=f"Product {e.product_id} not found")
    """

    def __init__(self, product_id: int):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class ValidationError(StockReservationError, ValueError):
    """Raised when an argument is malformed.

    The request layer is expected to validate input first; the engine and
    the ledger re-check and raise this error.

    Attributes:
        field: Name of the offending field, if known.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class InsufficientStockError(StockReservationError):
    """Raised inside the checkout transaction when durable stock cannot cover a sale.

    Raising it rolls back the transaction, so neither the product row nor
    the order row changes.

    Attributes:
        product_id: The product being sold.
        requested: The quantity requested.
        available: The durable stock observed inside the transaction.
    """

    def __init__(
        self,
        product_id: int,
        requested: int,
        available: int | None = None,
    ):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested={requested}, available={available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class BackendConnectionError(StockReservationError):
    """Raised when connection to the cache or the database fails.

    Example:
        try:
            await store.get_reserved_count(product_id)
        except BackendConnectionError:
            raise HTTPException(status_code=503, detail="Cache unavailable")
    """

    pass


class BackendOperationError(StockReservationError):
    """Raised when an operation on the cache or the database fails.

    This covers errors after the connection has been established, such as
    exhausted optimistic-transaction retries or database errors raised inside
    a transaction. The engine never retries these; retry policy belongs to
    the caller.
    """

    pass


class ConfigurationError(StockReservationError):
    """Raised when configuration is invalid.

    Common causes include a non-positive hold TTL, a negative reconcile
    interval or an unknown backend name passed to the factory.
    """

    pass
