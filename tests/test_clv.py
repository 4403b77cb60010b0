"""Tests for heuristic CLV value bands."""

from datetime import date
from decimal import Decimal

import pytest

from commerce_analytics.analyses.clv import clv_segment, customer_value_bands
from commerce_analytics.foundation.entities import ORDER_COLUMNS
from commerce_analytics.foundation.recordset import Recordset


def orders_from(rows):
    return Recordset(
        "orders",
        ORDER_COLUMNS,
        (
            {
                "order_id": order_id,
                "customer_id": customer_id,
                "order_date": order_date,
                "total_amount": Decimal(str(amount)),
            }
            for order_id, customer_id, order_date, amount in rows
        ),
    )


class TestCustomerValueBands:
    """Test spend summaries and projected value."""

    def test_annual_and_projected_value(self):
        orders = orders_from(
            [
                ("O1", "A", date(2024, 1, 1), 100),
                ("O2", "A", date(2024, 1, 11), 100),
                ("O3", "B", date(2024, 1, 5), 50),
            ]
        )
        bands = customer_value_bands(orders, "2024-02-01")
        rows = {r["customer_id"]: r for r in bands}

        assert bands.column("customer_id") == ["A", "B"]
        assert rows["A"]["total_orders"] == 2
        assert rows["A"]["total_spent"] == Decimal("200.00")
        assert rows["A"]["avg_order_value"] == Decimal("100.00")
        assert rows["A"]["lifespan_days"] == 10
        assert rows["A"]["days_since_last_purchase"] == 21
        assert rows["A"]["annual_value"] == Decimal("7300.00")
        assert rows["A"]["predicted_3yr_value"] == Decimal("21900.00")

        # Single-day customers are projected from their average order value
        assert rows["B"]["lifespan_days"] == 0
        assert rows["B"]["annual_value"] == Decimal("600.00")
        assert rows["B"]["predicted_3yr_value"] == Decimal("1800.00")

        assert rows["A"]["clv_quintile"] == 2
        assert rows["B"]["clv_quintile"] == 1
        assert set(bands.column("clv_segment")) == {"Standard"}

    def test_quintiles_and_segments(self):
        orders = orders_from(
            [(f"O{i}", f"C{i}", date(2024, 1, 1), 10 * i) for i in range(1, 6)]
        )
        bands = customer_value_bands(orders, "2024-03-01")
        assert bands.column("customer_id") == ["C5", "C4", "C3", "C2", "C1"]
        assert bands.column("clv_quintile") == [5, 4, 3, 2, 1]
        assert bands.column("clv_segment") == [
            "VIP",
            "High Value",
            "Medium Value",
            "Standard",
            "Standard",
        ]

    def test_future_order_raises_error(self):
        orders = orders_from([("O1", "A", date(2024, 5, 1), 10)])
        with pytest.raises(ValueError, match="after the reference date"):
            customer_value_bands(orders, "2024-04-01")

    @pytest.mark.parametrize(
        "quintile,expected",
        [(5, "VIP"), (4, "High Value"), (3, "Medium Value"), (2, "Standard"), (1, "Standard")],
    )
    def test_clv_segment(self, quintile, expected):
        assert clv_segment(quintile) == expected
