"""Period-over-period growth rates.

Every growth figure in this module goes through :func:`growth_pct`, so the
undefined-growth policy is uniform: with no previous period, or a previous
value of exactly zero, growth is absent (None) rather than an error or
infinity.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Literal, Optional

from commerce_analytics.foundation.periods import (
    add_months,
    index_to_month_key,
    month_key,
    month_key_index,
    quantize,
    to_decimal,
)
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime
from commerce_analytics.window import operators as ops
from commerce_analytics.window.apply import apply_window
from commerce_analytics.window.partition import Partition, order_recordset

logger = logging.getLogger(__name__)

GROWTH_COLUMNS = ("period_key", "value", "previous_value", "growth_pct")
PRODUCT_GROWTH_COLUMNS = ("product_id", "value", "previous_value", "growth_pct")

OrderMetric = Literal["revenue", "orders"]
ProductMetric = Literal["revenue", "units"]


def growth_pct(current: Any, previous: Any) -> Optional[Decimal]:
    """``(current - previous) / previous * 100`` rounded half-up to 2 decimals.

    >>> growth_pct(150, 100)
    Decimal('50.00')
    >>> growth_pct(0, 100)
    Decimal('-100.00')
    >>> growth_pct(150, 0) is None
    True
    >>> growth_pct(150, None) is None
    True
    """
    if previous is None or current is None:
        return None
    previous = to_decimal(previous)
    if previous == 0:
        return None
    return quantize((to_decimal(current) - previous) / previous * 100)


def _growth_against_lag(partition: Partition) -> list[Optional[Decimal]]:
    previous = ops.lag(partition, "value")
    return [growth_pct(cur, prev) for cur, prev in zip(partition.values("value"), previous)]


def calculate_growth(
    series: Iterable[tuple[str, Any]], name: str = "growth"
) -> Recordset:
    """Growth of each ``(period_key, value)`` pair versus the preceding pair.

    The series is taken in the order given.

    >>> rs = calculate_growth([("2024-01", 100), ("2024-02", 0), ("2024-03", 150)])
    >>> rs.column("growth_pct")
    [None, Decimal('-100.00'), None]
    """
    base = Recordset(
        name,
        ("period_key", "value"),
        ({"period_key": key, "value": value} for key, value in series),
    )
    return apply_window(
        base,
        {
            "previous_value": lambda p: ops.lag(p, "value"),
            "growth_pct": _growth_against_lag,
        },
    )


def _order_metric_value(metric: str, amount_sum: Decimal, order_count: int) -> Any:
    return amount_sum if metric == "revenue" else order_count


def monthly_totals(
    orders: Recordset, metric: OrderMetric = "revenue", fill_gaps: bool = False
) -> list[tuple[str, Any]]:
    """Per-calendar-month revenue or distinct order count, oldest first."""
    if metric not in ("revenue", "orders"):
        raise ValueError(f"metric must be 'revenue' or 'orders', got {metric!r}")
    orders.require_columns("order_id", "order_date", "total_amount")

    revenue: dict[str, Decimal] = {}
    order_ids: dict[str, set] = {}
    for row in orders:
        key = month_key(row["order_date"])
        revenue[key] = revenue.get(key, Decimal("0")) + to_decimal(row["total_amount"])
        order_ids.setdefault(key, set()).add(row["order_id"])

    keys = sorted(revenue, key=month_key_index)
    if fill_gaps and keys:
        keys = [
            index_to_month_key(i)
            for i in range(month_key_index(keys[0]), month_key_index(keys[-1]) + 1)
        ]
    return [
        (
            key,
            _order_metric_value(
                metric, revenue.get(key, Decimal("0")), len(order_ids.get(key, ()))
            ),
        )
        for key in keys
    ]


def monthly_growth(
    orders: Recordset, metric: OrderMetric = "revenue", fill_gaps: bool = False
) -> Recordset:
    """Month-over-month growth.

    Without ``fill_gaps`` the previous value is the preceding month present
    in the data; with it, missing months are inserted with a zero value.
    """
    return calculate_growth(monthly_totals(orders, metric, fill_gaps), name="monthly_growth")


def year_over_year_growth(orders: Recordset, metric: OrderMetric = "revenue") -> Recordset:
    """Growth of each month versus the same calendar month one year earlier.

    Months are partitioned by month-of-year and ordered by year; the lagged
    value only counts when it belongs to exactly the previous year.
    """
    series = monthly_totals(orders, metric)
    base = Recordset(
        "year_over_year_growth",
        ("period_key", "value", "year", "month"),
        (
            {
                "period_key": key,
                "value": value,
                "year": int(key[:4]),
                "month": int(key[5:]),
            }
            for key, value in series
        ),
    )

    def previous_year_value(partition: Partition) -> list[Any]:
        years = partition.values("year")
        lagged_years = ops.lag(partition, "year")
        lagged_values = ops.lag(partition, "value")
        return [
            value if prev_year is not None and prev_year == year - 1 else None
            for year, prev_year, value in zip(years, lagged_years, lagged_values)
        ]

    with_previous = apply_window(
        base,
        {"previous_value": previous_year_value},
        partition_by=["month"],
        order_by=["year"],
    )
    return Recordset(
        "year_over_year_growth",
        GROWTH_COLUMNS,
        (
            {
                "period_key": row["period_key"],
                "value": row["value"],
                "previous_value": row["previous_value"],
                "growth_pct": growth_pct(row["value"], row["previous_value"]),
            }
            for row in with_previous
        ),
    )


def product_growth(
    order_items: Recordset,
    orders: Recordset,
    reference_time: ReferenceTime | Any,
    metric: ProductMetric = "revenue",
) -> Recordset:
    """Compare each product's last month against the month before.

    The current window is ``[reference - 1 month, reference]`` and the
    previous window ``[reference - 2 months, reference - 1 month)``. Every
    product sold in either window appears; a window without sales counts as
    zero. Rows are ordered by product_id.
    """
    if metric not in ("revenue", "units"):
        raise ValueError(f"metric must be 'revenue' or 'units', got {metric!r}")
    reference_time = ReferenceTime.of(reference_time)
    order_items.require_columns("order_id", "product_id", "quantity", "unit_price")
    order_dates = {row["order_id"]: row["order_date"] for row in orders}

    as_of = reference_time.as_of
    current_start = add_months(as_of, -1)
    previous_start = add_months(as_of, -2)

    current: dict[str, Any] = {}
    previous: dict[str, Any] = {}
    for row in order_items:
        order_date = order_dates[row["order_id"]]
        if current_start <= order_date <= as_of:
            bucket = current
        elif previous_start <= order_date < current_start:
            bucket = previous
        else:
            continue
        if metric == "revenue":
            amount = to_decimal(row["quantity"]) * to_decimal(row["unit_price"])
            bucket[row["product_id"]] = bucket.get(row["product_id"], Decimal("0")) + amount
        else:
            bucket[row["product_id"]] = bucket.get(row["product_id"], 0) + row["quantity"]

    zero = Decimal("0") if metric == "revenue" else 0
    rows = []
    for product_id in sorted(set(current) | set(previous)):
        value = current.get(product_id, zero)
        previous_value = previous.get(product_id, zero)
        rows.append(
            {
                "product_id": product_id,
                "value": value,
                "previous_value": previous_value,
                "growth_pct": growth_pct(value, previous_value),
            }
        )
    return Recordset("product_growth", PRODUCT_GROWTH_COLUMNS, rows)


def customer_order_trajectory(orders: Recordset) -> Recordset:
    """Per-customer order sequence with comparisons to neighbouring orders.

    Orders are ranked within each customer by order_date (then order_id).
    Previous/next values are absent at the customer's first/last order.
    Rows are returned ordered by customer_id and order_number.
    """
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")

    def previous_totals(p: Partition) -> list[Any]:
        return ops.lag(p, "total_amount")

    def growth_vs_previous(p: Partition) -> list[Optional[Decimal]]:
        return [
            growth_pct(cur, prev)
            for cur, prev in zip(p.values("total_amount"), ops.lag(p, "total_amount"))
        ]

    def days_since_previous(p: Partition) -> list[Optional[int]]:
        return [
            None if prev is None else (cur - prev).days
            for cur, prev in zip(p.values("order_date"), ops.lag(p, "order_date"))
        ]

    enriched = apply_window(
        orders,
        {
            "order_number": ops.row_number,
            "previous_order_total": previous_totals,
            "growth_vs_previous_pct": growth_vs_previous,
            "days_since_previous_order": days_since_previous,
            "next_order_date": lambda p: ops.lead(p, "order_date"),
            "next_order_total": lambda p: ops.lead(p, "total_amount"),
        },
        partition_by=["customer_id"],
        order_by=["order_date", "order_id"],
    )
    return order_recordset(
        enriched.rename("customer_order_trajectory"), ["customer_id", "order_number"]
    )
