"""Pandas DataFrame adapters for recordsets and snapshots.

Loaders usually hold tabular data as DataFrames and presentation layers
usually want DataFrames back. These adapters convert at the boundary:

- Decimal -> float and None -> NaN/None when going to pandas
- NaN/NaT -> None, Timestamps -> ``date`` and floats -> Decimal (for the
  requested columns) when coming back
"""

from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

import pandas as pd  # type: ignore

from commerce_analytics.foundation.entities import (
    Category,
    Customer,
    Order,
    OrderItem,
    Product,
)
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.snapshot import Snapshot

from ._utils import decimal_to_float, float_to_decimal, is_missing, to_python_date


def recordset_to_dataframe(
    recordset: Recordset, decimals_as_float: bool = True
) -> pd.DataFrame:
    """Convert a recordset to a DataFrame with the same column order.

    Args:
        recordset: Rows to convert
        decimals_as_float: Convert Decimal cells to float so numeric
            columns get a float dtype. Absent values become NaN there.

    Returns:
        DataFrame with one row per recordset row (empty frames keep columns)

    Example:
        >>> df = recordset_to_dataframe(calculate_rfm(orders, "2024-06-30"))
        >>> df.groupby("segment_label").size()
    """
    if len(recordset) == 0:
        return pd.DataFrame(columns=list(recordset.columns))

    rows = [
        {
            col: (
                decimal_to_float(value)
                if decimals_as_float and isinstance(value, Decimal)
                else value
            )
            for col, value in row.items()
        }
        for row in recordset
    ]
    return pd.DataFrame(rows, columns=list(recordset.columns))


def dataframe_to_recordset(
    df: pd.DataFrame,
    name: str,
    decimal_columns: Iterable[str] = (),
    date_columns: Iterable[str] = (),
) -> Recordset:
    """Convert a DataFrame to a recordset.

    Args:
        df: Source frame; its column order becomes the recordset's
        name: Recordset name
        decimal_columns: Columns converted to Decimal
        date_columns: Columns converted to ``datetime.date``

    Missing cells (NaN, NaT, None) become None in every column.

    Raises:
        ValueError: If a named conversion column is not in ``df``
    """
    columns = [str(c) for c in df.columns]
    decimal_columns = set(decimal_columns)
    date_columns = set(date_columns)
    unknown = sorted((decimal_columns | date_columns) - set(columns))
    if unknown:
        raise ValueError(f"Columns {unknown} not found in DataFrame; available: {columns}")

    def convert(col: str, value: Any) -> Any:
        if is_missing(value):
            return None
        if col in decimal_columns:
            return float_to_decimal(value)
        if col in date_columns:
            return to_python_date(value)
        return value

    records = df.astype(object).to_dict("records")
    return Recordset(
        name,
        columns,
        ({col: convert(col, row[col]) for col in columns} for row in records),
    )


def _entities(df: Optional[pd.DataFrame], factory: Any, fields: Sequence[str]) -> list:
    if df is None:
        return []
    missing = [f for f in fields if f not in df.columns]
    if missing:
        raise ValueError(f"DataFrame for {factory.__name__} is missing columns {missing}")

    def cell(field: str, value: Any) -> Any:
        if is_missing(value):
            return None
        if field.endswith("_date"):
            return to_python_date(value)
        return value

    records = df.astype(object).to_dict("records")
    return [factory(**{f: cell(f, r[f]) for f in fields}) for r in records]


def snapshot_from_dataframes(
    customers: pd.DataFrame,
    orders: pd.DataFrame,
    order_items: pd.DataFrame,
    products: Optional[pd.DataFrame] = None,
    categories: Optional[pd.DataFrame] = None,
) -> Snapshot:
    """Build a validated :class:`Snapshot` from loader DataFrames.

    Each row goes through its entity dataclass, so field-level validation
    (non-negative money, positive quantities) applies. ``customers`` needs
    customer_id and signup_date; last_purchase_date and customer_name are
    optional columns.

    Raises:
        ValueError: On a missing required column or an invalid field value
        SchemaViolation: On referential or duplicate-id violations
    """
    customer_fields = ["customer_id", "signup_date"] + [
        f for f in ("last_purchase_date", "customer_name") if f in customers.columns
    ]
    return Snapshot.from_records(
        customers=_entities(customers, Customer, customer_fields),
        orders=_entities(
            orders, Order, ["order_id", "customer_id", "order_date", "total_amount"]
        ),
        order_items=_entities(
            order_items,
            OrderItem,
            ["order_item_id", "order_id", "product_id", "quantity", "unit_price"],
        ),
        products=(
            _entities(products, Product, ["product_id", "product_name", "category_id"])
            if products is not None
            else None
        ),
        categories=(
            _entities(categories, Category, ["category_id", "category_name"])
            if categories is not None
            else None
        ),
    )
