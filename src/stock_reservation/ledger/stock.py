# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
StockLedger: the authoritative, durable record of stock and orders.

The ledger owns the only irreversible operation in the system,
commit_sale(), which decrements stock and records the order in a single
database transaction. Everything the cache says about holds is advisory;
this is where overselling is actually prevented.
"""

import contextlib
import logging
import os
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, text, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from ..backends.base import (
    HealthCheckResult,
    validate_product_id,
    validate_quantity,
    validate_user_id,
)
from ..exceptions import (
    BackendConnectionError,
    BackendOperationError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from ..models import OrderRead, OrderStatus, ProductCreate, ProductRead
from .tables import Base, Order, Product, _utcnow

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./stock.db"


class StockLedger:
    """
    Durable product and order store backed by SQLAlchemy's asyncio engine.

    Any async SQLAlchemy URL works; PostgreSQL (asyncpg) is the production
    target and SQLite (aiosqlite) is used for tests and local runs.
    """

    def __init__(
        self,
        database_url: str | None = None,
        engine: AsyncEngine | None = None,
        echo: bool = False,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            database_url: Async SQLAlchemy URL. If not provided, falls back to the
                DATABASE_URL environment variable, then to a local SQLite file.
            engine: Optional pre-configured AsyncEngine (not disposed by dispose())
            echo: Log every SQL statement

        Environment Variables:
            DATABASE_URL: Default database URL when database_url is not provided.
        """
        self.database_url = (
            database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL
        )
        self._engine = engine or create_async_engine(self.database_url, echo=echo)
        self._owned_engine = engine is None
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    @contextlib.contextmanager
    def _db_errors(self, operation: str) -> Iterator[None]:
        """Translate SQLAlchemy errors into the library's exception hierarchy."""
        try:
            yield
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.error(f"Database connection lost during {operation}: {e}")
                raise BackendConnectionError(
                    f"Database unavailable during {operation}: {e}"
                ) from e
            logger.error(f"Database error during {operation}: {e}")
            raise BackendOperationError(f"Database error during {operation}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise BackendOperationError(f"Database error during {operation}: {e}") from e

    async def create_schema(self) -> None:
        """Create the products and orders tables if they do not exist."""
        with self._db_errors("create_schema"):
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Ledger schema ready")

    # === Products ===

    async def create(self, spec: ProductCreate | Mapping[str, Any]) -> ProductRead:
        """
        Create a product with a freshly assigned id.

        Args:
            spec: name, description, price and total_stock

        Raises:
            ValidationError: If the price or stock is negative or the name is empty
        """
        if not isinstance(spec, ProductCreate):
            try:
                spec = ProductCreate.model_validate(spec)
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first["loc"]) or None
                raise ValidationError(
                    f"Invalid product ({field or 'input'}): {first['msg']}",
                    field=field,
                ) from e

        # ProductCreate.model_construct() skips validation
        if spec.price < 0:
            raise ValidationError("price must be >= 0", field="price")
        if spec.total_stock < 0:
            raise ValidationError("total_stock must be >= 0", field="total_stock")

        with self._db_errors("create"):
            async with self._session_factory.begin() as session:
                product = Product(**spec.model_dump())
                session.add(product)
                await session.flush()
                created = ProductRead.model_validate(product)

        logger.info(
            f"Created product {created.id} name={created.name!r} "
            f"total_stock={created.total_stock}"
        )
        return created

    async def get(self, product_id: int) -> ProductRead:
        """
        Get a product by id.

        Raises:
            ProductNotFoundError: If the product does not exist
        """
        validate_product_id(product_id)
        with self._db_errors("get"):
            async with self._session_factory() as session:
                product = await session.get(Product, product_id)
                if product is None:
                    raise ProductNotFoundError(product_id)
                return ProductRead.model_validate(product)

    async def list_product_ids(self) -> list[int]:
        with self._db_errors("list_product_ids"):
            async with self._session_factory() as session:
                result = await session.execute(select(Product.id).order_by(Product.id))
                return list(result.scalars().all())

    # === Sales ===

    async def commit_sale(
        self, product_id: int, user_id: str, quantity: int
    ) -> OrderRead:
        """
        Decrement stock and record a completed order in one transaction.

        The product row is re-read with FOR UPDATE, and the decrement itself
        is guarded by ``total_stock >= quantity`` so that two concurrent sales
        cannot both succeed on the last units, even on databases that ignore
        row locks. Any exception inside the block rolls back both writes.

        Raises:
            ProductNotFoundError: If the product does not exist
            InsufficientStockError: If durable stock cannot cover the quantity
            BackendOperationError: If the database fails
        """
        validate_product_id(product_id)
        validate_user_id(user_id)
        validate_quantity(quantity)

        with self._db_errors("commit_sale"):
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    select(Product).where(Product.id == product_id).with_for_update()
                )
                product = result.scalar_one_or_none()
                if product is None:
                    raise ProductNotFoundError(product_id)
                if product.total_stock < quantity:
                    raise InsufficientStockError(
                        product_id, quantity, available=product.total_stock
                    )

                decrement = await session.execute(
                    update(Product)
                    .where(Product.id == product_id, Product.total_stock >= quantity)
                    .values(
                        total_stock=Product.total_stock - quantity,
                        updated_at=_utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if decrement.rowcount != 1:
                    raise InsufficientStockError(product_id, quantity)

                order = Order(
                    user_id=user_id,
                    product_id=product_id,
                    quantity=quantity,
                    total_price=product.price * quantity,
                    status=OrderStatus.COMPLETED.value,
                )
                session.add(order)
                await session.flush()
                created = OrderRead.model_validate(order)

        logger.info(
            f"Committed sale: order={created.id} product={product_id} "
            f"user={user_id} quantity={quantity}"
        )
        return created

    async def list_orders(
        self, product_id: int | None = None, user_id: str | None = None
    ) -> list[OrderRead]:
        """List orders, optionally filtered by product and/or user, oldest first."""
        stmt = select(Order).order_by(Order.id)
        if product_id is not None:
            stmt = stmt.where(Order.product_id == product_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)

        with self._db_errors("list_orders"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [OrderRead.model_validate(o) for o in result.scalars().all()]

    # === Lifecycle ===

    async def health_check(self) -> HealthCheckResult:
        """Perform health check on the database."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return HealthCheckResult(
                healthy=True,
                backend_type="sqlalchemy",
                namespace=self._engine.url.render_as_string(hide_password=True),
                metadata={"dialect": self._engine.dialect.name},
            )
        except SQLAlchemyError as e:
            return HealthCheckResult(
                healthy=False,
                backend_type="sqlalchemy",
                namespace=self._engine.url.render_as_string(hide_password=True),
                error=str(e),
            )

    async def dispose(self) -> None:
        """Dispose of the engine's connection pool if this ledger created it."""
        if self._owned_engine:
            await self._engine.dispose()

    async def __aenter__(self) -> "StockLedger":
        await self.create_schema()
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.dispose()
