# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
RedisReservationStore for the stock reservation engine

This module provides the Redis-backed hold store used by distributed
deployments, where several engine processes share one cache.

Key Features:
- Holds stored as plain string keys with EX, so Redis expires them natively
- Aggregate counter maintained with INCRBY/DECRBY in the same MULTI/EXEC
  transaction as the hold write or delete
- Optimistic WATCH on the hold key so concurrent overwrites and removals
  never double-count
- Checkout claims taken with SET NX EX so one hold is sold at most once
- Hash-tagged keys so all keys of a product live in one cluster slot
"""

import asyncio
import contextlib
import logging
import os
from collections.abc import Iterator
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError,
    RedisError,
    TimeoutError,
    WatchError,
)

from ..exceptions import BackendConnectionError, BackendOperationError
from .base import (
    BaseReservationStore,
    HealthCheckResult,
    validate_product_id,
    validate_user_id,
)

logger = logging.getLogger(__name__)


class RedisReservationStore(BaseReservationStore):
    """
    A distributed Redis hold store.

    Key layout (``ns`` is the namespace, ``pid`` the product id)::

        {ns:pid}:reserved            aggregate reserved counter (no TTL)
        {ns:pid}:hold:<user_id>      held quantity (EX = hold TTL)
        {ns:pid}:checkout:<user_id>  checkout claim marker (SET NX EX)

    Redis removes an expired hold key on its own and leaves the counter as
    it was; reconcile() repairs the counter from the live hold keys.
    """

    SCAN_COUNT = 100

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: Any | None = None,
        namespace: str = "stock",
        max_connections: int = 10,
        max_watch_retries: int = 5,
    ) -> None:
        """
        Initialize the Redis store.

        Args:
            redis_url: Redis connection URL. If not provided, falls back to REDIS_URL
                environment variable, then to "redis://localhost:6379".
            redis_client: Optional pre-configured Redis client (not closed by close())
            namespace: Namespace prefix for keys
            max_connections: Maximum connections in the pool
            max_watch_retries: Attempts for a WATCH/MULTI batch before giving up

        Environment Variables:
            REDIS_URL: Default Redis connection URL when redis_url is not provided.
        """
        super().__init__(namespace)

        self.redis_url = (
            redis_url or os.environ.get("REDIS_URL") or "redis://localhost:6379"
        )
        self.max_connections = max_connections
        self.max_watch_retries = max_watch_retries

        self._redis: Any | None = redis_client
        self._owned_redis = redis_client is None
        self._connection_lock = asyncio.Lock()

    async def _ensure_connected(self) -> Any:
        """Return the client, creating the connection pool on first use."""
        if self._redis is not None:
            return self._redis

        async with self._connection_lock:
            if self._redis is None:
                self._redis = Redis.from_url(
                    self.redis_url,
                    max_connections=self.max_connections,
                    decode_responses=True,
                )
                logger.info(f"Connected RedisReservationStore to {self.redis_url}")
        return self._redis

    @contextlib.contextmanager
    def _redis_errors(self, operation: str) -> Iterator[None]:
        """Translate redis-py errors into the library's exception hierarchy."""
        try:
            yield
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Redis connection error during {operation}: {e}")
            raise BackendConnectionError(
                f"Redis unavailable during {operation}: {e}"
            ) from e
        except RedisError as e:
            logger.error(f"Redis error during {operation}: {e}")
            raise BackendOperationError(f"Redis error during {operation}: {e}") from e

    # === Reads ===

    async def get_reserved_count(self, product_id: int) -> int:
        """Get the aggregate reserved quantity for a product."""
        validate_product_id(product_id)
        with self._redis_errors("get_reserved_count"):
            redis_client = await self._ensure_connected()
            raw = await redis_client.get(self.counter_key(product_id))
        return max(0, int(raw or 0))

    async def get_hold(self, product_id: int, user_id: str) -> int | None:
        """Get a user's live hold on a product."""
        validate_product_id(product_id)
        validate_user_id(user_id)
        with self._redis_errors("get_hold"):
            redis_client = await self._ensure_connected()
            raw = await redis_client.get(self.hold_key(product_id, user_id))
        return int(raw) if raw is not None else None

    # === Batches ===

    async def add_hold(
        self, product_id: int, user_id: str, quantity: int, ttl: int
    ) -> None:
        """
        Create or overwrite a hold and move the counter by the difference.

        WATCH on the hold key makes the read of the previous quantity and the
        MULTI/EXEC write one optimistic transaction; a concurrent change to
        the same hold aborts EXEC and the batch is retried.
        """
        self._check_hold_args(product_id, user_id, quantity, ttl)
        hold_key = self.hold_key(product_id, user_id)
        counter_key = self.counter_key(product_id)

        with self._redis_errors("add_hold"):
            redis_client = await self._ensure_connected()
            for attempt in range(1, self.max_watch_retries + 1):
                async with redis_client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(hold_key)
                        raw = await pipe.get(hold_key)
                        previous = int(raw) if raw is not None else 0

                        pipe.multi()
                        pipe.incrby(counter_key, quantity - previous)
                        pipe.set(hold_key, quantity, ex=ttl)
                        await pipe.execute()

                        logger.debug(
                            f"Hold set: {hold_key} quantity={quantity} previous={previous}"
                        )
                        return
                    except WatchError:
                        logger.debug(
                            f"Concurrent change on {hold_key}, retrying add_hold "
                            f"(attempt {attempt}/{self.max_watch_retries})"
                        )

        raise BackendOperationError(
            f"add_hold on {hold_key} lost {self.max_watch_retries} optimistic retries"
        )

    async def remove_hold(self, product_id: int, user_id: str) -> int | None:
        """Delete a hold and decrement the counter by its quantity."""
        validate_product_id(product_id)
        validate_user_id(user_id)
        hold_key = self.hold_key(product_id, user_id)
        counter_key = self.counter_key(product_id)

        with self._redis_errors("remove_hold"):
            redis_client = await self._ensure_connected()
            for attempt in range(1, self.max_watch_retries + 1):
                async with redis_client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(hold_key)
                        raw = await pipe.get(hold_key)
                        if raw is None:
                            await pipe.unwatch()
                            return None
                        quantity = int(raw)

                        pipe.multi()
                        pipe.decrby(counter_key, quantity)
                        pipe.delete(hold_key)
                        await pipe.execute()

                        logger.debug(f"Hold removed: {hold_key} quantity={quantity}")
                        return quantity
                    except WatchError:
                        logger.debug(
                            f"Concurrent change on {hold_key}, retrying remove_hold "
                            f"(attempt {attempt}/{self.max_watch_retries})"
                        )

        raise BackendOperationError(
            f"remove_hold on {hold_key} lost {self.max_watch_retries} optimistic retries"
        )

    async def reconcile(self, product_id: int) -> int:
        """
        Reset the counter to the sum of the product's live holds.

        The counter key is watched while the hold keys are scanned. Every
        add_hold/remove_hold touches the counter, so a concurrent batch
        aborts EXEC and the scan is repeated.

        Uses SCAN instead of KEYS to avoid blocking Redis on large keyspaces.
        """
        validate_product_id(product_id)
        counter_key = self.counter_key(product_id)
        pattern = self.hold_pattern(product_id)

        with self._redis_errors("reconcile"):
            redis_client = await self._ensure_connected()
            for attempt in range(1, self.max_watch_retries + 1):
                async with redis_client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(counter_key)
                        previous = int(await pipe.get(counter_key) or 0)

                        keys = [
                            key
                            async for key in redis_client.scan_iter(
                                match=pattern, count=self.SCAN_COUNT
                            )
                        ]
                        values = await redis_client.mget(keys) if keys else []
                        # Holds that expired mid-scan come back as None
                        total = sum(int(v) for v in values if v is not None)

                        pipe.multi()
                        pipe.set(counter_key, total)
                        await pipe.execute()
                    except WatchError:
                        logger.debug(
                            f"Concurrent change on {counter_key}, retrying reconcile "
                            f"(attempt {attempt}/{self.max_watch_retries})"
                        )
                        continue

                if previous != total:
                    logger.info(
                        f"Reconciled reserved count for product {product_id}: "
                        f"{previous} -> {total}"
                    )
                return total

        raise BackendOperationError(
            f"reconcile of {counter_key} lost {self.max_watch_retries} optimistic retries"
        )

    # === Checkout Claims ===

    async def try_claim(self, product_id: int, user_id: str, ttl: int) -> bool:
        """Take the checkout claim with SET NX EX."""
        self._check_claim_args(product_id, user_id, ttl)
        key = self.claim_key(product_id, user_id)
        with self._redis_errors("try_claim"):
            redis_client = await self._ensure_connected()
            claimed = await redis_client.set(key, 1, nx=True, ex=ttl)
        if not claimed:
            logger.debug(f"Claim already held: {key}")
        return bool(claimed)

    async def release_claim(self, product_id: int, user_id: str) -> None:
        """Drop a checkout claim."""
        validate_product_id(product_id)
        validate_user_id(user_id)
        with self._redis_errors("release_claim"):
            redis_client = await self._ensure_connected()
            await redis_client.delete(self.claim_key(product_id, user_id))

    # === Maintenance ===

    async def clear(self) -> None:
        """Delete every key in this store's namespace."""
        pattern = f"{{{self.namespace}:*"
        with self._redis_errors("clear"):
            redis_client = await self._ensure_connected()
            keys_to_delete = []
            async for key in redis_client.scan_iter(match=pattern, count=self.SCAN_COUNT):
                keys_to_delete.append(key)
                if len(keys_to_delete) >= self.SCAN_COUNT:
                    await redis_client.delete(*keys_to_delete)
                    keys_to_delete = []
            if keys_to_delete:
                await redis_client.delete(*keys_to_delete)

    async def health_check(self) -> HealthCheckResult:
        """Perform health check on the store."""
        try:
            redis_client = await self._ensure_connected()
            await redis_client.ping()
            return HealthCheckResult(
                healthy=True,
                backend_type="redis",
                namespace=self.namespace,
                metadata={"redis_url": self.redis_url},
            )
        except RedisError as e:
            return HealthCheckResult(
                healthy=False,
                backend_type="redis",
                namespace=self.namespace,
                error=str(e),
            )

    async def close(self) -> None:
        """Close the connection pool if this store created it."""
        if self._redis is not None and self._owned_redis:
            try:
                await self._redis.aclose()
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._redis = None
