"""Unit tests for the exceptions module.

Tests all exception classes defined in stock_reservation.exceptions.
"""

import pytest

from stock_reservation.exceptions import (
    BackendConnectionError,
    BackendOperationError,
    ConfigurationError,
    InsufficientStockError,
    ProductNotFoundError,
    StockReservationError,
    ValidationError,
)


class TestStockReservationError:
    """Tests for the base StockReservationError exception."""

    def test_can_be_caught_as_exception(self):
        with pytest.raises(Exception):  # noqa: B017
            raise StockReservationError("test error")

    def test_message_preserved(self):
        assert str(StockReservationError("boom")) == "boom"

    @pytest.mark.parametrize(
        "exc",
        [
            ProductNotFoundError(1),
            ValidationError("bad"),
            InsufficientStockError(1, 2),
            BackendConnectionError("down"),
            BackendOperationError("failed"),
            ConfigurationError("wrong"),
        ],
    )
    def test_all_errors_share_the_base(self, exc):
        assert isinstance(exc, StockReservationError)


class TestProductNotFoundError:
    def test_carries_product_id(self):
        exc = ProductNotFoundError(42)
        assert exc.product_id == 42
        assert "42" in str(exc)


class TestValidationError:
    def test_is_also_a_value_error(self):
        with pytest.raises(ValueError):
            raise ValidationError("quantity must be at least 1", field="quantity")

    def test_field_defaults_to_none(self):
        assert ValidationError("bad").field is None

    def test_field_preserved(self):
        assert ValidationError("bad", field="price").field == "price"


class TestInsufficientStockError:
    def test_attributes(self):
        exc = InsufficientStockError(7, requested=3, available=1)
        assert exc.product_id == 7
        assert exc.requested == 3
        assert exc.available == 1
        assert "requested=3" in str(exc)
        assert "available=1" in str(exc)

    def test_available_optional(self):
        exc = InsufficientStockError(7, 3)
        assert exc.available is None
