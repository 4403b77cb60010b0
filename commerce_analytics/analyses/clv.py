"""Heuristic customer lifetime value bands (3-year projection).

This is a spend-rate extrapolation, not a probabilistic model:

- ``annual_value`` is ``total_spent / lifespan_days * 365``; single-day
  customers (lifespan 0) are assumed to buy ``avg_order_value`` monthly.
- ``predicted_3yr_value`` is ``annual_value * 3``.
- Customers are split into quintiles of predicted value (5 is highest).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from commerce_analytics.foundation.periods import MONEY_PRECISION, quantize, to_decimal
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime
from commerce_analytics.window import operators as ops
from commerce_analytics.window.apply import apply_window
from commerce_analytics.window.partition import ParallelOptions, order_recordset

CLV_BASE_COLUMNS = (
    "customer_id",
    "total_orders",
    "total_spent",
    "avg_order_value",
    "lifespan_days",
    "days_since_last_purchase",
    "annual_value",
    "predicted_3yr_value",
)


def clv_segment(quintile: int) -> str:
    if quintile == 5:
        return "VIP"
    if quintile >= 4:
        return "High Value"
    if quintile >= 3:
        return "Medium Value"
    return "Standard"


def customer_value_bands(
    orders: Recordset,
    reference_time: ReferenceTime | Any,
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Per-customer spend summary, projected value and value band.

    Customers without orders do not appear. Rows are ordered by
    predicted_3yr_value descending; quintile ties keep customer_id order.

    Raises
    ------
    ValueError
        If any order is dated after the reference date.
    """
    reference_time = ReferenceTime.of(reference_time)
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")

    first: dict[str, Any] = {}
    last: dict[str, Any] = {}
    order_ids: dict[str, set] = {}
    spent: dict[str, Decimal] = {}
    rows_seen: dict[str, int] = {}
    for row in orders:
        order_date = row["order_date"]
        if reference_time.days_since(order_date) < 0:
            raise ValueError(
                f"Order {row['order_id']} is dated {order_date}, after the "
                f"reference date {reference_time.isoformat()}"
            )
        customer_id = row["customer_id"]
        if customer_id not in first or order_date < first[customer_id]:
            first[customer_id] = order_date
        if customer_id not in last or order_date > last[customer_id]:
            last[customer_id] = order_date
        order_ids.setdefault(customer_id, set()).add(row["order_id"])
        spent[customer_id] = spent.get(customer_id, Decimal("0")) + to_decimal(
            row["total_amount"]
        )
        rows_seen[customer_id] = rows_seen.get(customer_id, 0) + 1

    base_rows = []
    for customer_id in sorted(first):
        total_spent = spent[customer_id]
        avg_order_value = total_spent / rows_seen[customer_id]
        lifespan_days = (last[customer_id] - first[customer_id]).days
        if lifespan_days == 0:
            annual_value = avg_order_value * 12
        else:
            annual_value = total_spent / lifespan_days * 365
        base_rows.append(
            {
                "customer_id": customer_id,
                "total_orders": len(order_ids[customer_id]),
                "total_spent": quantize(total_spent, MONEY_PRECISION),
                "avg_order_value": quantize(avg_order_value, MONEY_PRECISION),
                "lifespan_days": lifespan_days,
                "days_since_last_purchase": reference_time.days_since(last[customer_id]),
                "annual_value": quantize(annual_value, MONEY_PRECISION),
                "predicted_3yr_value": quantize(annual_value * 3, MONEY_PRECISION),
            }
        )

    base = Recordset("customer_value_bands", CLV_BASE_COLUMNS, base_rows)

    def quintiles(p):
        return ops.ntile(p, 5)

    def segments(p):
        return [clv_segment(q) for q in ops.ntile(p, 5)]

    banded = apply_window(
        base,
        {"clv_quintile": quintiles, "clv_segment": segments},
        order_by=["predicted_3yr_value"],
        parallel=parallel,
    )
    return order_recordset(banded, [("predicted_3yr_value", "desc")])
