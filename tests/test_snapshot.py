"""Tests for entities, snapshot validation, reference time and period helpers."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from commerce_analytics.errors import SchemaViolation
from commerce_analytics.foundation import (
    Category,
    Customer,
    Order,
    OrderItem,
    Product,
    ReferenceTime,
    Snapshot,
)
from commerce_analytics.foundation.periods import (
    add_months,
    index_to_month_key,
    month_index,
    month_key,
    month_key_index,
    months_between,
    percentage,
    to_decimal,
)


class TestEntities:
    """Test entity field validation."""

    def test_order_converts_amount_to_decimal(self):
        """Float amounts are converted without binary artefacts."""
        order = Order("O1", "C1", date(2024, 1, 1), 19.99)
        assert order.total_amount == Decimal("19.99")

    def test_order_coerces_ids_to_str(self):
        order = Order(1, 2, date(2024, 1, 1), 5)
        assert order.order_id == "1"
        assert order.customer_id == "2"

    def test_order_datetime_becomes_date(self):
        order = Order("O1", "C1", datetime(2024, 1, 1, 15, 30), 5)
        assert order.order_date == date(2024, 1, 1)

    def test_negative_order_total_raises_error(self):
        with pytest.raises(ValueError, match="Order total cannot be negative"):
            Order("O1", "C1", date(2024, 1, 1), -1)

    def test_order_date_must_be_date(self):
        with pytest.raises(TypeError, match="order_date must be a date"):
            Order("O1", "C1", "2024-01-01", 1)

    def test_zero_quantity_raises_error(self):
        with pytest.raises(ValueError, match="Quantity must be positive"):
            OrderItem("I1", "O1", "P1", 0, 10)

    def test_negative_unit_price_raises_error(self):
        with pytest.raises(ValueError, match="Unit price cannot be negative"):
            OrderItem("I1", "O1", "P1", 1, -10)

    def test_line_total(self):
        item = OrderItem("I1", "O1", "P1", 3, "2.50")
        assert item.line_total == Decimal("7.50")

    def test_customer_optional_fields(self):
        customer = Customer("C1", date(2023, 1, 1))
        assert customer.last_purchase_date is None
        assert customer.customer_name is None


def build_snapshot(**overrides):
    parts = dict(
        customers=[Customer("C1", date(2023, 1, 1)), Customer("C2", date(2023, 1, 1))],
        orders=[
            Order("O1", "C1", date(2024, 1, 1), 10),
            Order("O2", "C2", date(2024, 1, 2), 20),
        ],
        order_items=[
            OrderItem("I1", "O1", "P1", 1, 10),
            OrderItem("I2", "O2", "P2", 2, 10),
        ],
        products=[Product("P1", "Widget", "K1"), Product("P2", "Gadget", "K1")],
        categories=[Category("K1", "Tools")],
    )
    parts.update(overrides)
    return Snapshot.from_records(**parts)


class TestSnapshotValidation:
    """Test cross-entity invariants checked before any computation."""

    def test_valid_snapshot(self):
        snapshot = build_snapshot()
        assert len(snapshot.orders) == 2
        assert snapshot.products is not None
        assert snapshot.orders.name == "orders"

    def test_products_optional(self):
        snapshot = build_snapshot(products=None, categories=None)
        assert snapshot.products is None
        assert snapshot.categories is None

    def test_order_with_unknown_customer(self):
        with pytest.raises(SchemaViolation, match="references unknown customer C9"):
            build_snapshot(orders=[Order("O1", "C9", date(2024, 1, 1), 10)], order_items=[])

    def test_item_with_unknown_order(self):
        with pytest.raises(SchemaViolation, match="references unknown order O9"):
            build_snapshot(order_items=[OrderItem("I1", "O9", "P1", 1, 10)])

    def test_item_with_unknown_product(self):
        with pytest.raises(SchemaViolation, match="references unknown product P9"):
            build_snapshot(order_items=[OrderItem("I1", "O1", "P9", 1, 10)])

    def test_unknown_product_ignored_without_products(self):
        """Product references are only checked when products are supplied."""
        snapshot = build_snapshot(
            order_items=[OrderItem("I1", "O1", "P9", 1, 10)], products=None, categories=None
        )
        assert len(snapshot.order_items) == 1

    def test_product_with_unknown_category(self):
        with pytest.raises(SchemaViolation, match="references unknown category K9"):
            build_snapshot(products=[Product("P1", "W", "K9"), Product("P2", "G", "K1")])

    def test_duplicate_ids(self):
        with pytest.raises(SchemaViolation, match="Duplicate customer id C1"):
            build_snapshot(
                customers=[
                    Customer("C1", date(2023, 1, 1)),
                    Customer("C1", date(2023, 2, 1)),
                    Customer("C2", date(2023, 1, 1)),
                ]
            )

    def test_all_violations_reported_together(self):
        """Every violation is collected into one exception."""
        with pytest.raises(SchemaViolation) as exc_info:
            build_snapshot(
                orders=[
                    Order("O1", "C8", date(2024, 1, 1), 10),
                    Order("O2", "C9", date(2024, 1, 2), 20),
                ]
            )
        assert len(exc_info.value.violations) == 2
        assert isinstance(exc_info.value, ValueError)


class TestReferenceTime:
    """Test the injectable reference time."""

    def test_of_iso_string(self):
        assert ReferenceTime.of("2024-04-10").as_of == date(2024, 4, 10)

    def test_of_iso_string_with_z(self):
        assert ReferenceTime.of("2024-04-10T12:00:00Z").as_of == date(2024, 4, 10)

    def test_of_datetime(self):
        assert ReferenceTime.of(datetime(2024, 4, 10, 8)).as_of == date(2024, 4, 10)

    def test_of_passthrough(self):
        ref = ReferenceTime(date(2024, 4, 10))
        assert ReferenceTime.of(ref) is ref

    def test_days_since(self):
        ref = ReferenceTime(date(2024, 4, 10))
        assert ref.days_since(date(2024, 1, 1)) == 100
        assert ref.days_since(date(2024, 4, 11)) == -1

    def test_invalid_type_raises_error(self):
        with pytest.raises(TypeError, match="as_of must be a date"):
            ReferenceTime(20240410)


class TestPeriods:
    """Test calendar-month and percentage helpers."""

    def test_percentage_rounds_half_up(self):
        assert percentage(1, 8) == Decimal("12.50")
        assert percentage(1, 3) == Decimal("33.33")
        assert percentage(2, 3) == Decimal("66.67")

    def test_percentage_absent_for_zero_or_none(self):
        assert percentage(1, 0) is None
        assert percentage(None, 10) is None
        assert percentage(1, None) is None

    def test_to_decimal_rejects_bool(self):
        with pytest.raises(TypeError, match="Expected numeric value"):
            to_decimal(True)

    def test_month_helpers(self):
        assert month_key(date(2023, 1, 31)) == "2023-01"
        assert months_between(date(2023, 12, 31), date(2024, 1, 1)) == 1
        assert month_key_index("2024-01") == month_index(date(2024, 1, 15))
        assert index_to_month_key(month_key_index("2023-12") + 1) == "2024-01"

    def test_add_months_clamps_day(self):
        assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
        assert add_months(date(2024, 1, 15), 12) == date(2025, 1, 15)
