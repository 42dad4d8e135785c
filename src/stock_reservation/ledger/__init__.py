# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Durable stock ledger.

Exports:
    StockLedger: Transactional product and order store
    Base, Product, Order: SQLAlchemy declarative base and tables
"""

from .stock import StockLedger
from .tables import Base, Order, Product

__all__ = ["Base", "Order", "Product", "StockLedger"]
