# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
ReservationEngine: coordinates cache holds with the durable stock ledger.

Each (product, user) pair moves through an implicit lifecycle::

    Unreserved --reserve--> Reserved --cancel-----> Cancelled
                                     --checkout---> Checked-out
                                     --TTL elapses-> Expired

Cancelled, Checked-out and Expired all behave like Unreserved for the next
reserve() call.

The two phases are asymmetric. reserve() is a best-effort
check-then-act against the cache and can over-reserve when calls race.
checkout() is authoritative: the ledger re-validates stock inside a database
transaction, so only as many racing holders as there are units can complete.
"""

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from typing import Any

from .backends.base import (
    BaseReservationStore,
    HealthCheckResult,
    validate_product_id,
    validate_quantity,
    validate_user_id,
)
from .backends.memory import MemoryReservationStore
from .config import ReservationConfig
from .exceptions import (
    ConfigurationError,
    InsufficientStockError,
    ProductNotFoundError,
    StockReservationError,
)
from .ledger import StockLedger
from .models import ProductCreate, ProductRead, StockStatus
from .observability.collector import MetricsCollector, get_metrics_collector
from .observability.constants import (
    CANCELLATIONS_TOTAL,
    CHECKOUTS_TOTAL,
    CLEANUP_FAILURES_TOTAL,
    OUTCOME_CANCELLED,
    OUTCOME_COMPLETED,
    OUTCOME_IN_PROGRESS,
    OUTCOME_INSUFFICIENT_STOCK,
    OUTCOME_NO_HOLD,
    OUTCOME_NOT_HELD,
    OUTCOME_PRODUCT_MISSING,
    OUTCOME_RESERVED,
    RECONCILIATIONS_TOTAL,
    RESERVATIONS_TOTAL,
)

logger = logging.getLogger(__name__)


class ReservationEngine:
    """
    The only component that talks to both the hold store and the ledger.

    The engine keeps no state between calls: every operation re-reads the
    store and the ledger before deciding. It holds no in-process lock while
    awaiting either of them.

    Args:
        ledger: Durable product/order store
        store: Cache of holds and reserved counters
        config: Engine configuration (defaults to ReservationConfig())
        metrics: Metrics collector (defaults to the process-wide collector;
            ignored when config.metrics_enabled is False)

    Example:
        >>> async with ReservationEngine(ledger, store) as engine:
        ...     product = await engine.create_product(
        ...         {"name": "Lamp", "price": "19.99", "total_stock": 5}
        ...     )
        ...     if await engine.reserve(product.id, "alice", 2):
        ...         await engine.checkout(product.id, "alice")
    """

    def __init__(
        self,
        ledger: StockLedger,
        store: BaseReservationStore,
        config: ReservationConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.config = config or ReservationConfig()

        self._metrics: MetricsCollector | None = None
        if self.config.metrics_enabled:
            self._metrics = metrics or get_metrics_collector()

        self._reconcile_task: asyncio.Task[None] | None = None
        self._running = False

    def _count(self, name: str, outcome: str | None = None) -> None:
        if self._metrics is not None:
            self._metrics.inc_counter(
                name, labels={"outcome": outcome} if outcome else None
            )

    # ==========================================================================
    # Products
    # ==========================================================================

    async def create_product(
        self, spec: ProductCreate | Mapping[str, Any]
    ) -> ProductRead:
        """Create a product in the ledger. Raises ValidationError on bad input."""
        return await self.ledger.create(spec)

    async def get_product(self, product_id: int) -> ProductRead:
        return await self.ledger.get(product_id)

    async def get_status(self, product_id: int) -> StockStatus:
        """
        Report durable, reserved and available stock for a product.

        Raises:
            ProductNotFoundError: If the product does not exist
        """
        product = await self.ledger.get(product_id)
        reserved = await self.store.get_reserved_count(product_id)
        return StockStatus.from_counts(product.total_stock, reserved)

    # ==========================================================================
    # Hold Lifecycle
    # ==========================================================================

    async def reserve(self, product_id: int, user_id: str, quantity: int) -> bool:
        """
        Place a hold of ``quantity`` units for ``user_id``.

        Replaces any hold the user already has on this product.

        Returns:
            True if the hold was placed, False if available stock was too low

        Raises:
            ProductNotFoundError: If the product does not exist
            ValidationError: If an argument is malformed
        """
        validate_product_id(product_id)
        validate_user_id(user_id)
        validate_quantity(quantity)

        product = await self.ledger.get(product_id)
        reserved = await self.store.get_reserved_count(product_id)

        if product.total_stock - reserved < quantity:
            logger.info(
                f"Reserve rejected: product={product_id} user={user_id} "
                f"quantity={quantity} total={product.total_stock} reserved={reserved}"
            )
            self._count(RESERVATIONS_TOTAL, OUTCOME_INSUFFICIENT_STOCK)
            return False

        await self.store.add_hold(product_id, user_id, quantity, self.config.hold_ttl)
        logger.debug(
            f"Reserved: product={product_id} user={user_id} quantity={quantity} "
            f"ttl={self.config.hold_ttl}"
        )
        self._count(RESERVATIONS_TOTAL, OUTCOME_RESERVED)
        return True

    async def cancel(self, product_id: int, user_id: str) -> bool:
        """
        Release a user's hold. Safe to call repeatedly.

        Returns:
            True if a hold was released, False if there was none
        """
        released = await self.store.remove_hold(product_id, user_id)
        if released is None:
            self._count(CANCELLATIONS_TOTAL, OUTCOME_NOT_HELD)
            return False

        logger.debug(
            f"Cancelled: product={product_id} user={user_id} quantity={released}"
        )
        self._count(CANCELLATIONS_TOTAL, OUTCOME_CANCELLED)
        return True

    async def checkout(self, product_id: int, user_id: str) -> bool:
        """
        Turn a user's hold into a completed order.

        The hold is claimed first, so concurrent checkouts of the same hold
        cannot both reach the ledger; the loser returns False. The claim is a
        separate marker and leaves the hold itself untouched.

        The ledger commit is the point of no return. If it fails for lack of
        stock or because the product vanished, the hold is left untouched so
        the caller can cancel it or let it expire. If the commit succeeds but
        the hold cannot be removed afterwards, the sale stands, the stale
        hold lingers until its TTL and the claim is kept until it lapses.

        Returns:
            True only when the ledger transaction committed

        Raises:
            BackendConnectionError, BackendOperationError: On infrastructure failure
                before the commit (nothing has changed in that case)
        """
        validate_product_id(product_id)
        validate_user_id(user_id)

        if not await self.store.try_claim(
            product_id, user_id, self.config.checkout_claim_ttl
        ):
            logger.info(
                f"Checkout already in progress: product={product_id} user={user_id}"
            )
            self._count(CHECKOUTS_TOTAL, OUTCOME_IN_PROGRESS)
            return False

        release = True
        try:
            quantity = await self.store.get_hold(product_id, user_id)
            if quantity is None:
                logger.info(
                    f"Checkout without hold: product={product_id} user={user_id}"
                )
                self._count(CHECKOUTS_TOTAL, OUTCOME_NO_HOLD)
                return False

            try:
                order = await self.ledger.commit_sale(product_id, user_id, quantity)
            except InsufficientStockError as e:
                logger.warning(f"Checkout failed: {e}")
                self._count(CHECKOUTS_TOTAL, OUTCOME_INSUFFICIENT_STOCK)
                return False
            except ProductNotFoundError as e:
                logger.warning(f"Checkout failed: {e}")
                self._count(CHECKOUTS_TOTAL, OUTCOME_PRODUCT_MISSING)
                return False

            self._count(CHECKOUTS_TOTAL, OUTCOME_COMPLETED)

            try:
                await self.store.remove_hold(product_id, user_id)
            except StockReservationError as e:
                logger.error(
                    f"Order {order.id} committed but hold for product={product_id} "
                    f"user={user_id} could not be removed; it will linger until its "
                    f"TTL expires: {e}"
                )
                self._count(CLEANUP_FAILURES_TOTAL)
                # The lingering hold must not be sold again while the claim lives
                release = False

            return True
        finally:
            if release:
                await self._release_claim(product_id, user_id)

    async def _release_claim(self, product_id: int, user_id: str) -> None:
        try:
            await self.store.release_claim(product_id, user_id)
        except StockReservationError as e:
            logger.warning(
                f"Could not release checkout claim for product={product_id} "
                f"user={user_id}; it lapses after "
                f"{self.config.checkout_claim_ttl}s: {e}"
            )

    # ==========================================================================
    # Drift Reconciliation
    # ==========================================================================

    async def reconcile(self, product_id: int) -> int:
        """
        Recompute a product's reserved counter from its live holds.

        Returns:
            The reconciled reserved count
        """
        total = await self.store.reconcile(product_id)
        self._count(RECONCILIATIONS_TOTAL)
        return total

    async def reconcile_all(self) -> dict[int, int]:
        """Reconcile every product in the ledger."""
        results = {}
        for product_id in await self.ledger.list_product_ids():
            results[product_id] = await self.reconcile(product_id)
        return results

    async def start(self) -> None:
        """Start the background reconcile loop if reconcile_interval > 0."""
        if self._running or self.config.reconcile_interval <= 0:
            return

        self._running = True
        self._reconcile_task = asyncio.create_task(self._reconcile_loop())
        logger.debug("ReservationEngine reconcile task started")

    async def stop(self) -> None:
        """Stop the background reconcile loop."""
        if not self._running:
            return

        self._running = False
        if self._reconcile_task:
            self._reconcile_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconcile_task
            self._reconcile_task = None
        logger.debug("ReservationEngine reconcile task stopped")

    async def _reconcile_loop(self) -> None:
        """Background task that periodically reconciles every product."""
        while self._running:
            try:
                await asyncio.sleep(self.config.reconcile_interval)
                if self._running:
                    await self.reconcile_all()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Error in reserved count reconciliation: %s", e)

    # ==========================================================================
    # Health & Lifecycle
    # ==========================================================================

    async def health_check(self) -> dict[str, HealthCheckResult]:
        """Health of the hold store and the ledger, keyed by component."""
        store_health, ledger_health = await asyncio.gather(
            self.store.health_check(), self.ledger.health_check()
        )
        return {"store": store_health, "ledger": ledger_health}

    async def close(self) -> None:
        await self.stop()
        await self.store.close()
        await self.ledger.dispose()

    async def __aenter__(self) -> "ReservationEngine":
        await self.ledger.create_schema()
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()


def create_reservation_engine(
    backend: str = "memory",
    database_url: str | None = None,
    redis_url: str | None = None,
    config: ReservationConfig | None = None,
    metrics: MetricsCollector | None = None,
    **store_kwargs: Any,
) -> ReservationEngine:
    """
    Factory function to create a ReservationEngine with its collaborators.

    Args:
        backend: Hold store to use ("memory" or "redis")
        database_url: Ledger database URL (falls back to DATABASE_URL)
        redis_url: Redis URL for the redis backend (falls back to REDIS_URL)
        config: Engine configuration (defaults to ReservationConfig.from_env())
        metrics: Optional metrics collector
        **store_kwargs: Additional arguments passed to the store constructor

    Returns:
        Configured ReservationEngine instance; use it as an async context
        manager to create the schema and start background tasks.

    Raises:
        ConfigurationError: If backend is unknown
    """
    if config is None:
        config = ReservationConfig.from_env()

    store: BaseReservationStore
    backend_name = backend.lower()
    if backend_name == "memory":
        store = MemoryReservationStore(namespace=config.namespace, **store_kwargs)
    elif backend_name == "redis":
        from .backends.redis import RedisReservationStore

        store = RedisReservationStore(
            redis_url=redis_url,
            namespace=config.namespace,
            max_watch_retries=config.max_watch_retries,
            **store_kwargs,
        )
    else:
        raise ConfigurationError(f"Unknown reservation backend: {backend}")

    return ReservationEngine(
        ledger=StockLedger(database_url=database_url),
        store=store,
        config=config,
        metrics=metrics,
    )
