# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Data models for the stock reservation engine.

Pydantic models describe what crosses the engine boundary: product input,
read-only snapshots of ledger rows and the stock status report. ORM rows
never leave the ledger.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OrderStatus(str, Enum):
    """Lifecycle state of an order row.

    The engine only ever writes COMPLETED; PENDING and CANCELLED exist for
    rows written by other tools against the same schema.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProductCreate(BaseModel):
    """Input for creating a product."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    total_stock: int = Field(..., ge=0)


class ProductRead(BaseModel):
    """Snapshot of a product row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    price: Decimal
    total_stock: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderRead(BaseModel):
    """Snapshot of an order row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    product_id: int
    quantity: int
    total_price: Decimal
    status: OrderStatus
    created_at: datetime | None = None


class StockStatus(BaseModel):
    """
    Stock report for one product.

    ``available_stock`` is clamped at zero: the reserved counter can briefly
    exceed the durable stock when concurrent reservations race or holds
    expire without decrementing it.
    """

    total_stock: int = Field(..., ge=0)
    reserved_stock: int = Field(..., ge=0)
    available_stock: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _validate_available(self) -> "StockStatus":
        if self.available_stock != max(0, self.total_stock - self.reserved_stock):
            raise ValueError("available_stock must equal max(0, total - reserved)")
        return self

    @classmethod
    def from_counts(cls, total_stock: int, reserved_stock: int) -> "StockStatus":
        return cls(
            total_stock=total_stock,
            reserved_stock=reserved_stock,
            available_stock=max(0, total_stock - reserved_stock),
        )
