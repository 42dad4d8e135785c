# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
MemoryReservationStore for the stock reservation engine

This module provides an in-memory hold store that doesn't require Redis.
Perfect for testing, development, and single-process applications.
"""

import asyncio
import heapq
import logging
import time
from collections import defaultdict
from collections.abc import Callable

from .base import BaseReservationStore, HealthCheckResult, validate_product_id, validate_user_id

logger = logging.getLogger(__name__)


class MemoryReservationStore(BaseReservationStore):
    """
    An in-memory hold store.

    This store provides a Redis-free implementation suitable for:
    - Testing and development
    - Single-process applications

    Key Features:
    - Pure in-memory dict-based storage with the same key layout as Redis
    - TTL support with passive expiry, mirroring Redis semantics: an
      expired hold disappears but the counter is left as it was
    - Async-safe batches using asyncio.Lock
    - Injectable clock so tests can expire holds without sleeping

    Note:
        This store is NOT suitable for multi-process applications or
        distributed deployments; every process would see its own holds.
    """

    def __init__(
        self,
        namespace: str = "stock",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the in-memory store.

        Args:
            namespace: Namespace for key isolation
            clock: Function returning the current time in seconds
        """
        super().__init__(namespace)
        self._clock = clock

        # Format: Dict[hold_key, Tuple[quantity, expiry_timestamp]]
        self._holds: dict[str, tuple[int, float]] = {}
        # Format: Dict[counter_key, reserved_quantity]
        self._counters: dict[str, int] = defaultdict(int)
        # Format: Dict[claim_key, expiry_timestamp]
        self._claims: dict[str, float] = {}

        # Expiration heap for O(log n) cleanup of expired holds
        # Format: List[Tuple[expiry_time, hold_key]]
        self._expiration_heap: list[tuple[float, str]] = []

        self._lock = asyncio.Lock()

        logger.debug(f"Initialized MemoryReservationStore with namespace '{namespace}'")

    def _is_expired(self, expiry: float) -> bool:
        return self._clock() >= expiry

    def _expire_holds_locked(self) -> int:
        """
        Drop expired holds using the expiration heap.

        Uses lazy deletion: heap entries may reference holds that were
        removed or overwritten with a later expiry. Those are skipped.

        Counters are left untouched, which is how Redis key
        expiry behaves too.

        IMPORTANT: Must be called while holding self._lock.

        Returns:
            Number of holds actually removed.
        """
        now = self._clock()
        removed = 0

        while self._expiration_heap:
            expiry, key = self._expiration_heap[0]
            if expiry > now:
                break

            heapq.heappop(self._expiration_heap)

            entry = self._holds.get(key)
            if entry is not None and entry[1] == expiry:
                del self._holds[key]
                removed += 1
                logger.debug(f"Hold expired: {key}")

        return removed

    def _live_hold_locked(self, key: str) -> int | None:
        entry = self._holds.get(key)
        if entry is None:
            return None
        quantity, expiry = entry
        if self._is_expired(expiry):
            del self._holds[key]
            return None
        return quantity

    # Reads

    async def get_reserved_count(self, product_id: int) -> int:
        """Get the aggregate reserved quantity for a product."""
        validate_product_id(product_id)
        async with self._lock:
            return max(0, self._counters.get(self.counter_key(product_id), 0))

    async def get_hold(self, product_id: int, user_id: str) -> int | None:
        """Get a user's live hold on a product."""
        validate_product_id(product_id)
        validate_user_id(user_id)
        async with self._lock:
            self._expire_holds_locked()
            return self._live_hold_locked(self.hold_key(product_id, user_id))

    # Batches

    async def add_hold(
        self, product_id: int, user_id: str, quantity: int, ttl: int
    ) -> None:
        """Create or overwrite a hold and move the counter by the difference."""
        self._check_hold_args(product_id, user_id, quantity, ttl)
        hold_key = self.hold_key(product_id, user_id)
        counter_key = self.counter_key(product_id)

        async with self._lock:
            self._expire_holds_locked()
            previous = self._live_hold_locked(hold_key) or 0

            expiry = self._clock() + ttl
            self._counters[counter_key] += quantity - previous
            self._holds[hold_key] = (quantity, expiry)
            heapq.heappush(self._expiration_heap, (expiry, hold_key))

            logger.debug(
                f"Hold set: {hold_key} quantity={quantity} previous={previous} "
                f"reserved={self._counters[counter_key]}"
            )

    async def remove_hold(self, product_id: int, user_id: str) -> int | None:
        """Delete a hold and decrement the counter by its quantity."""
        validate_product_id(product_id)
        validate_user_id(user_id)
        hold_key = self.hold_key(product_id, user_id)
        counter_key = self.counter_key(product_id)

        async with self._lock:
            self._expire_holds_locked()
            quantity = self._live_hold_locked(hold_key)
            if quantity is None:
                return None

            del self._holds[hold_key]
            self._counters[counter_key] -= quantity

            logger.debug(
                f"Hold removed: {hold_key} quantity={quantity} "
                f"reserved={self._counters[counter_key]}"
            )
            return quantity

    async def reconcile(self, product_id: int) -> int:
        """Reset the counter to the sum of the product's live holds."""
        validate_product_id(product_id)
        counter_key = self.counter_key(product_id)
        prefix = self.hold_key(product_id, "")

        async with self._lock:
            self._expire_holds_locked()
            total = sum(
                quantity
                for key, (quantity, _expiry) in self._holds.items()
                if key.startswith(prefix)
            )
            previous = self._counters.get(counter_key, 0)
            self._counters[counter_key] = total

        if previous != total:
            logger.info(
                f"Reconciled reserved count for product {product_id}: "
                f"{previous} -> {total}"
            )
        return total

    # Checkout claims

    async def try_claim(self, product_id: int, user_id: str, ttl: int) -> bool:
        """Take the checkout claim on a user's hold unless a live one exists."""
        self._check_claim_args(product_id, user_id, ttl)
        key = self.claim_key(product_id, user_id)

        async with self._lock:
            expiry = self._claims.get(key)
            if expiry is not None and not self._is_expired(expiry):
                logger.debug(f"Claim already held: {key}")
                return False
            self._claims[key] = self._clock() + ttl
            return True

    async def release_claim(self, product_id: int, user_id: str) -> None:
        """Drop a checkout claim."""
        validate_product_id(product_id)
        validate_user_id(user_id)
        async with self._lock:
            self._claims.pop(self.claim_key(product_id, user_id), None)

    # Maintenance

    async def clear(self) -> None:
        """Delete every hold, claim and counter."""
        async with self._lock:
            self._holds.clear()
            self._counters.clear()
            self._expiration_heap.clear()
            self._claims.clear()
            logger.debug("Cleared all holds, claims and counters")

    async def health_check(self) -> HealthCheckResult:
        """Perform health check on the store."""
        async with self._lock:
            self._expire_holds_locked()
            return HealthCheckResult(
                healthy=True,
                backend_type="memory",
                namespace=self.namespace,
                metadata={
                    "live_holds": len(self._holds),
                    "counters": len(self._counters),
                },
            )
