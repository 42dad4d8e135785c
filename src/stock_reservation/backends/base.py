# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Base ReservationStore for the stock reservation engine

This module provides the BaseReservationStore abstract class that defines
the interface every hold store implements, plus the key layout and argument
checks they share.

Features:
- Per-(product, user) holds with a time-to-live
- A per-product aggregate reserved counter maintained incrementally
- Indivisible add/remove batches that change the hold and the counter together
- Counter reconciliation from live holds
- Checkout claims so one hold backs at most one sale
"""

import abc
import logging
from dataclasses import dataclass
from typing import Any

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    """
    Structured health check result for store and ledger monitoring.

    Attributes:
        healthy: Whether the component is operational
        backend_type: Type of component (e.g., 'redis', 'memory', 'sqlalchemy')
        namespace: Namespace or database the component serves
        error: Error message if unhealthy
        metadata: Additional component-specific information
    """

    healthy: bool
    backend_type: str
    namespace: str
    error: str | None = None
    metadata: dict[str, Any] | None = None


def validate_product_id(product_id: int) -> None:
    """
    Validate that product_id is a positive integer.

    Raises:
        ValidationError: If product_id is not a positive int
    """
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError(
            f"product_id must be an integer, got {type(product_id).__name__}",
            field="product_id",
        )
    if product_id < 1:
        raise ValidationError(
            f"product_id must be positive, got {product_id}", field="product_id"
        )


def validate_user_id(user_id: str) -> None:
    """
    Validate that user_id is a non-empty string.

    Raises:
        ValidationError: If user_id is not a non-empty str
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id must be a non-empty string", field="user_id")


def validate_quantity(quantity: int) -> None:
    """
    Validate that quantity is an integer of at least 1.

    Raises:
        ValidationError: If quantity is not an int or is below 1
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(
            f"quantity must be an integer, got {type(quantity).__name__}",
            field="quantity",
        )
    if quantity < 1:
        raise ValidationError(
            f"quantity must be at least 1, got {quantity}", field="quantity"
        )


class BaseReservationStore(abc.ABC):
    """
    An abstract base class for the cache that holds reservations.

    A store keeps two kinds of data per product: one hold per user with an
    expiry, and an aggregate counter equal to the sum of the live holds'
    quantities. The counter is updated incrementally by add_hold and
    remove_hold, always in the same batch as the hold itself.

    When a hold expires on its own the store drops it without touching the
    counter, so the counter can overcount until reconcile() is called.

    Subclasses must implement all abstract methods. Implementations are
    interchangeable from the engine's point of view.
    """

    def __init__(self, namespace: str = "stock"):
        """
        Initialize the store with a namespace for key isolation.

        Args:
            namespace: Prefix for every key written by this store
        """
        self.namespace = namespace

    # ==========================================================================
    # Key Layout
    # ==========================================================================

    def _hash_tag(self, product_id: int) -> str:
        """Hash tag keeping all keys of one product in the same cluster slot."""
        return f"{{{self.namespace}:{product_id}}}"

    def counter_key(self, product_id: int) -> str:
        """Key of the aggregate reserved counter for a product."""
        return f"{self._hash_tag(product_id)}:reserved"

    def hold_key(self, product_id: int, user_id: str) -> str:
        """Key of a single user's hold on a product."""
        return f"{self._hash_tag(product_id)}:hold:{user_id}"

    def hold_pattern(self, product_id: int) -> str:
        """Glob pattern matching every hold key of a product."""
        return f"{self._hash_tag(product_id)}:hold:*"

    def claim_key(self, product_id: int, user_id: str) -> str:
        """Key of the marker held while a user's hold is being checked out."""
        return f"{self._hash_tag(product_id)}:checkout:{user_id}"

    # ==========================================================================
    # Reads
    # ==========================================================================

    @abc.abstractmethod
    async def get_reserved_count(self, product_id: int) -> int:
        """
        Get the aggregate reserved quantity for a product.

        Args:
            product_id: The product to read

        Returns:
            The counter value, 0 if absent. Never negative.
        """
        pass

    @abc.abstractmethod
    async def get_hold(self, product_id: int, user_id: str) -> int | None:
        """
        Get a user's live hold on a product.

        Args:
            product_id: The product held
            user_id: The holder

        Returns:
            The held quantity, or None if there is no live hold
        """
        pass

    # ==========================================================================
    # Batches
    # ==========================================================================

    @abc.abstractmethod
    async def add_hold(
        self, product_id: int, user_id: str, quantity: int, ttl: int
    ) -> None:
        """
        Create or overwrite a hold and update the counter in one batch.

        The hold is set to ``quantity`` (not added to a previous hold) and
        expires ``ttl`` seconds from now. The counter moves by
        ``quantity - previous`` where ``previous`` is the replaced live hold,
        or 0.

        Args:
            product_id: The product to hold
            user_id: The holder
            quantity: Units to hold (>= 1)
            ttl: Hold lifetime in seconds (>= 1)
        """
        pass

    @abc.abstractmethod
    async def remove_hold(self, product_id: int, user_id: str) -> int | None:
        """
        Delete a hold and decrement the counter by its quantity in one batch.

        Args:
            product_id: The product held
            user_id: The holder

        Returns:
            The removed quantity, or None if there was nothing to remove
        """
        pass

    @abc.abstractmethod
    async def reconcile(self, product_id: int) -> int:
        """
        Reset the counter to the sum of the product's live holds.

        This corrects the overcount left behind by passively expired holds.

        Args:
            product_id: The product to reconcile

        Returns:
            The reconciled counter value
        """
        pass

    # ==========================================================================
    # Checkout Claims
    # ==========================================================================

    @abc.abstractmethod
    async def try_claim(self, product_id: int, user_id: str, ttl: int) -> bool:
        """
        Mark a user's hold as being checked out, if nobody else has.

        The claim is separate from the hold: the hold and the counter are
        not touched, so a failed checkout leaves the hold exactly as it was.

        Args:
            product_id: The product held
            user_id: The holder
            ttl: Seconds after which an unreleased claim lapses (>= 1)

        Returns:
            True if this caller now owns the claim, False if it was taken
        """
        pass

    @abc.abstractmethod
    async def release_claim(self, product_id: int, user_id: str) -> None:
        """Drop a checkout claim. A no-op if there is none."""
        pass

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    @abc.abstractmethod
    async def clear(self) -> None:
        """Delete every hold, claim and counter in this store's namespace."""
        pass

    @abc.abstractmethod
    async def health_check(self) -> HealthCheckResult:
        """
        Perform a health check on the store.

        Returns:
            HealthCheckResult with status and metadata
        """
        pass

    async def close(self) -> None:  # noqa: B027
        """Release connections held by the store. Default is a no-op."""
        pass

    async def __aenter__(self) -> "BaseReservationStore":
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    def _check_hold_args(
        self, product_id: int, user_id: str, quantity: int, ttl: int
    ) -> None:
        validate_quantity(quantity)
        self._check_claim_args(product_id, user_id, ttl)

    def _check_claim_args(self, product_id: int, user_id: str, ttl: int) -> None:
        validate_product_id(product_id)
        validate_user_id(user_id)
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 1:
            raise ValidationError(f"ttl must be a positive integer, got {ttl}", field="ttl")
