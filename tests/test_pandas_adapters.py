"""Tests for pandas DataFrame adapters."""

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from commerce_analytics.errors import SchemaViolation
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.pandas import (
    dataframe_to_recordset,
    recordset_to_dataframe,
    snapshot_from_dataframes,
)


class TestRecordsetToDataFrame:
    """Test recordset -> DataFrame conversion."""

    def test_decimals_become_floats(self):
        rs = Recordset(
            "monthly_growth",
            ["period_key", "growth_pct"],
            [
                {"period_key": "2024-01", "growth_pct": None},
                {"period_key": "2024-02", "growth_pct": Decimal("12.50")},
            ],
        )
        df = recordset_to_dataframe(rs)
        assert list(df.columns) == ["period_key", "growth_pct"]
        assert pd.isna(df.loc[0, "growth_pct"])
        assert df.loc[1, "growth_pct"] == 12.5

    def test_keep_decimals(self):
        rs = Recordset("t", ["x"], [{"x": Decimal("1.50")}])
        df = recordset_to_dataframe(rs, decimals_as_float=False)
        assert df.loc[0, "x"] == Decimal("1.50")
        assert isinstance(df.loc[0, "x"], Decimal)

    def test_empty_keeps_columns(self):
        df = recordset_to_dataframe(Recordset("t", ["a", "b"]))
        assert len(df) == 0
        assert list(df.columns) == ["a", "b"]


class TestDataFrameToRecordset:
    """Test DataFrame -> recordset conversion."""

    def test_conversions(self):
        df = pd.DataFrame(
            {
                "order_id": ["O1", "O2"],
                "total_amount": [19.99, float("nan")],
                "order_date": pd.to_datetime(["2024-03-01", None]),
            }
        )
        rs = dataframe_to_recordset(
            df, "orders", decimal_columns=["total_amount"], date_columns=["order_date"]
        )
        assert rs.name == "orders"
        assert rs.columns == ("order_id", "total_amount", "order_date")
        assert rs.to_dicts() == [
            {"order_id": "O1", "total_amount": Decimal("19.99"), "order_date": date(2024, 3, 1)},
            {"order_id": "O2", "total_amount": None, "order_date": None},
        ]

    def test_unknown_conversion_column(self):
        df = pd.DataFrame({"a": [1]})
        with pytest.raises(ValueError, match="not found in DataFrame"):
            dataframe_to_recordset(df, "t", decimal_columns=["b"])


def loader_frames():
    customers = pd.DataFrame(
        {
            "customer_id": ["C1", "C2"],
            "signup_date": pd.to_datetime(["2023-01-01", "2023-02-01"]),
        }
    )
    orders = pd.DataFrame(
        {
            "order_id": ["O1", "O2"],
            "customer_id": ["C1", "C2"],
            "order_date": pd.to_datetime(["2024-01-05", "2024-02-10"]),
            "total_amount": [25.5, 40.0],
        }
    )
    order_items = pd.DataFrame(
        {
            "order_item_id": ["I1", "I2"],
            "order_id": ["O1", "O2"],
            "product_id": ["P1", "P2"],
            "quantity": [1, 2],
            "unit_price": [25.5, 20.0],
        }
    )
    return customers, orders, order_items


class TestSnapshotFromDataFrames:
    """Test snapshot building from loader frames."""

    def test_builds_validated_snapshot(self):
        snapshot = snapshot_from_dataframes(*loader_frames())
        first = snapshot.orders[0]
        assert first["order_date"] == date(2024, 1, 5)
        assert first["total_amount"] == Decimal("25.5")
        assert snapshot.customers[0]["customer_name"] is None
        assert snapshot.order_items.column("quantity") == [1, 2]
        assert snapshot.products is None

    def test_referential_violation(self):
        customers, orders, order_items = loader_frames()
        orders.loc[1, "customer_id"] = "C9"
        with pytest.raises(SchemaViolation, match="unknown customer C9"):
            snapshot_from_dataframes(customers, orders, order_items)

    def test_missing_column(self):
        customers, orders, order_items = loader_frames()
        with pytest.raises(ValueError, match="missing columns"):
            snapshot_from_dataframes(customers, orders.drop(columns=["order_date"]), order_items)
