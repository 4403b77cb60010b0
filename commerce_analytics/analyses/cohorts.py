"""Cohort retention and repeat-purchase behaviour by acquisition month.

A customer's cohort is the calendar month of their earliest order. The
retention table is built as a staged pipeline::

    customer_first_purchase -> customer_purchase_months -> cohort_summary
    customer_first_purchase -> cohort_size
    (cohort_summary, cohort_size) -> cohort_retention

``cohort_size`` only needs first purchases, so it runs concurrently with the
purchase-month tagging and is independent of ``cohort_summary``.

Quick Start
-----------
>>> from datetime import date
>>> from commerce_analytics.foundation import Order, Recordset
>>> orders = Recordset.from_records("orders", [
...     Order("O1", "C1", date(2023, 1, 5), 10),
...     Order("O2", "C1", date(2023, 3, 2), 20),
...     Order("O3", "C2", date(2023, 1, 9), 30),
... ])
>>> table = cohort_retention(orders)
>>> [(r["months_since_cohort"], str(r["retention_rate_pct"])) for r in table]
[(0, '100.00'), (2, '50.00')]
"""

from __future__ import annotations

import logging
from collections import Counter
from decimal import Decimal
from typing import Any, Mapping

from commerce_analytics.foundation.periods import (
    MONEY_PRECISION,
    month_key,
    month_key_index,
    months_between,
    percentage,
    quantize,
    to_decimal,
)
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.pipeline.composer import Pipeline, Stage

logger = logging.getLogger(__name__)

FIRST_PURCHASE_COLUMNS = ("customer_id", "first_order_date", "cohort_month")
PURCHASE_MONTH_COLUMNS = (
    "customer_id",
    "order_id",
    "cohort_month",
    "months_since_cohort",
    "total_amount",
)
COHORT_SUMMARY_COLUMNS = (
    "cohort_month",
    "months_since_cohort",
    "active_customers",
    "revenue",
)
COHORT_SIZE_COLUMNS = ("cohort_month", "cohort_size")
RETENTION_COLUMNS = (
    "cohort_month",
    "months_since_cohort",
    "cohort_size",
    "active_customers",
    "retention_rate_pct",
    "revenue",
)
REPEAT_RATE_COLUMNS = (
    "cohort_month",
    "cohort_customers",
    "one_time_buyers",
    "repeat_customers",
    "repeat_rate_pct",
    "avg_purchases_per_customer",
    "max_purchases",
    "min_purchases",
)


def first_purchases(orders: Recordset) -> Recordset:
    """Earliest order date and cohort month per customer, by customer_id."""
    orders.require_columns("customer_id", "order_date")
    first: dict[str, Any] = {}
    for row in orders:
        customer_id = row["customer_id"]
        if customer_id not in first or row["order_date"] < first[customer_id]:
            first[customer_id] = row["order_date"]

    return Recordset(
        "customer_first_purchase",
        FIRST_PURCHASE_COLUMNS,
        (
            {
                "customer_id": customer_id,
                "first_order_date": first[customer_id],
                "cohort_month": month_key(first[customer_id]),
            }
            for customer_id in sorted(first)
        ),
    )


def purchase_months(first_purchase: Recordset, orders: Recordset) -> Recordset:
    """Tag every order with its customer's cohort and months since cohort start."""
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")
    firsts = first_purchase.index_by("customer_id")
    rows = []
    for row in orders:
        first = firsts[row["customer_id"]]
        rows.append(
            {
                "customer_id": row["customer_id"],
                "order_id": row["order_id"],
                "cohort_month": first["cohort_month"],
                "months_since_cohort": months_between(
                    first["first_order_date"], row["order_date"]
                ),
                "total_amount": to_decimal(row["total_amount"]),
            }
        )
    return Recordset("customer_purchase_months", PURCHASE_MONTH_COLUMNS, rows)


def summarise_cohorts(months: Recordset) -> Recordset:
    """Distinct active customers and revenue per (cohort_month, months_since_cohort)."""
    active: dict[tuple[str, int], set] = {}
    revenue: dict[tuple[str, int], Decimal] = {}
    for row in months:
        key = (row["cohort_month"], row["months_since_cohort"])
        active.setdefault(key, set()).add(row["customer_id"])
        revenue[key] = revenue.get(key, Decimal("0")) + row["total_amount"]

    return Recordset(
        "cohort_summary",
        COHORT_SUMMARY_COLUMNS,
        (
            {
                "cohort_month": key[0],
                "months_since_cohort": key[1],
                "active_customers": len(active[key]),
                "revenue": revenue[key],
            }
            for key in sorted(active)
        ),
    )


def cohort_sizes(first_purchase: Recordset) -> Recordset:
    counts = Counter(first_purchase.column("cohort_month"))
    return Recordset(
        "cohort_size",
        COHORT_SIZE_COLUMNS,
        ({"cohort_month": m, "cohort_size": counts[m]} for m in sorted(counts)),
    )


def join_retention(
    summary: Recordset, sizes: Recordset, fill_gaps: bool = False
) -> Recordset:
    """Join activity with cohort sizes and compute retention percentages.

    With ``fill_gaps`` every month between 0 and the cohort's last active
    month is emitted, using zero activity where no customer ordered.
    """
    size_by_cohort = {row["cohort_month"]: row["cohort_size"] for row in sizes}
    activity = {
        (row["cohort_month"], row["months_since_cohort"]): row for row in summary
    }

    keys = sorted(activity)
    if fill_gaps:
        last_month: dict[str, int] = {}
        for cohort, offset in keys:
            last_month[cohort] = max(offset, last_month.get(cohort, 0))
        keys = [
            (cohort, offset)
            for cohort in sorted(last_month)
            for offset in range(last_month[cohort] + 1)
        ]

    rows = []
    for cohort, offset in keys:
        cohort_size = size_by_cohort[cohort]
        found = activity.get((cohort, offset))
        active = found["active_customers"] if found else 0
        rows.append(
            {
                "cohort_month": cohort,
                "months_since_cohort": offset,
                "cohort_size": cohort_size,
                "active_customers": active,
                "retention_rate_pct": percentage(active, cohort_size),
                "revenue": found["revenue"] if found else Decimal("0"),
            }
        )
    return Recordset("cohort_retention", RETENTION_COLUMNS, rows)


def cohort_stages(fill_gaps: bool = False, orders_input: str = "orders") -> list[Stage]:
    """Cohort retention stages reading orders from ``orders_input``."""

    def first_stage(up: Mapping[str, Recordset]) -> Recordset:
        return first_purchases(up[orders_input])

    def months_stage(up: Mapping[str, Recordset]) -> Recordset:
        return purchase_months(up["customer_first_purchase"], up[orders_input])

    def summary_stage(up: Mapping[str, Recordset]) -> Recordset:
        return summarise_cohorts(up["customer_purchase_months"])

    def size_stage(up: Mapping[str, Recordset]) -> Recordset:
        return cohort_sizes(up["customer_first_purchase"])

    def retention_stage(up: Mapping[str, Recordset]) -> Recordset:
        return join_retention(up["cohort_summary"], up["cohort_size"], fill_gaps)

    return [
        Stage("customer_first_purchase", first_stage, depends_on=(orders_input,)),
        Stage(
            "customer_purchase_months",
            months_stage,
            depends_on=("customer_first_purchase", orders_input),
        ),
        Stage("cohort_summary", summary_stage, depends_on=("customer_purchase_months",)),
        Stage("cohort_size", size_stage, depends_on=("customer_first_purchase",)),
        Stage(
            "cohort_retention",
            retention_stage,
            depends_on=("cohort_summary", "cohort_size"),
        ),
    ]


def cohort_retention(orders: Recordset, fill_gaps: bool = False) -> Recordset:
    """Run the cohort pipeline and return the ``cohort_retention`` recordset.

    Rows are ordered by cohort_month, then months_since_cohort. Retention at
    ``months_since_cohort == 0`` is always 100.00.
    """
    pipeline = Pipeline(cohort_stages(fill_gaps), inputs=("orders",))
    result = pipeline.run({"orders": orders})["cohort_retention"]
    logger.info(
        f"Built cohort retention for {len(set(result.column('cohort_month')))} cohorts"
    )
    return result


def repeat_rate_by_cohort(orders: Recordset) -> Recordset:
    """Repeat-purchase behaviour per acquisition cohort.

    A repeat customer has two or more distinct orders. The average number of
    purchases per customer is rounded to 2 decimals.
    """
    first = first_purchases(orders).index_by("customer_id")
    orders_per_customer: dict[str, set] = {}
    for row in orders:
        orders_per_customer.setdefault(row["customer_id"], set()).add(row["order_id"])

    by_cohort: dict[str, list[int]] = {}
    for customer_id, order_ids in orders_per_customer.items():
        cohort = first[customer_id]["cohort_month"]
        by_cohort.setdefault(cohort, []).append(len(order_ids))

    rows = []
    for cohort in sorted(by_cohort, key=month_key_index):
        counts = by_cohort[cohort]
        repeat = sum(1 for c in counts if c >= 2)
        rows.append(
            {
                "cohort_month": cohort,
                "cohort_customers": len(counts),
                "one_time_buyers": len(counts) - repeat,
                "repeat_customers": repeat,
                "repeat_rate_pct": percentage(repeat, len(counts)),
                "avg_purchases_per_customer": quantize(
                    Decimal(sum(counts)) / Decimal(len(counts)), MONEY_PRECISION
                ),
                "max_purchases": max(counts),
                "min_purchases": min(counts),
            }
        )
    return Recordset("repeat_rate_by_cohort", REPEAT_RATE_COLUMNS, rows)
