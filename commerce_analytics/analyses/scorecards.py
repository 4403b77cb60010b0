"""Business scorecards: order value progression, segment performance, KPIs.

These are summary tables rather than per-entity scores:

- ``order_value_progression``: average order value by order sequence
  number (first order, second order, ...) with the change from the
  previous sequence
- ``segment_performance``: customers grouped by purchase frequency and
  recency of activity
- ``business_kpis``: one-row headline metrics for the whole snapshot
- ``category_scorecard``: categories ranked on revenue, order volume,
  customer reach and average transaction value
"""

from __future__ import annotations

import statistics
from decimal import Decimal
from typing import Any, Optional

from commerce_analytics.foundation.periods import (
    MONEY_PRECISION,
    percentage,
    quantize,
    to_decimal,
)
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime
from commerce_analytics.window import operators as ops
from commerce_analytics.window.apply import apply_window
from commerce_analytics.window.partition import ParallelOptions, order_recordset

DEFAULT_MAX_SEQUENCE = 8
ACTIVE_DAYS = 30
DORMANT_DAYS = 90
WHOLE_DAYS = Decimal("1")

ORDER_VALUE_PROGRESSION_COLUMNS = (
    "order_sequence",
    "customer_count",
    "avg_order_value",
    "min_order_value",
    "max_order_value",
    "stddev_order_value",
)

SEGMENT_PERFORMANCE_COLUMNS = (
    "purchase_segment",
    "activity_status",
    "customer_count",
    "avg_purchases",
    "avg_customer_value",
    "avg_order_value",
    "avg_customer_age_days",
)

BUSINESS_KPI_COLUMNS = (
    "total_customers",
    "total_orders",
    "total_revenue",
    "avg_order_value",
    "revenue_per_customer",
    "orders_per_customer",
    "customer_conversion_pct",
    "total_products",
    "total_categories",
    "days_of_operation",
    "avg_daily_revenue",
)

CATEGORY_SCORECARD_COLUMNS = (
    "category_id",
    "category_name",
    "product_count",
    "order_count",
    "customer_count",
    "total_units_sold",
    "total_revenue",
    "avg_transaction_value",
    "revenue_per_product",
    "last_sale_date",
    "days_since_last_sale",
)

CATEGORY_RANKS = {
    "revenue_rank": "total_revenue",
    "volume_rank": "order_count",
    "customer_reach_rank": "customer_count",
    "transaction_value_rank": "avg_transaction_value",
}


def _mean(values: list[Decimal], precision: Decimal = MONEY_PRECISION) -> Optional[Decimal]:
    if not values:
        return None
    return quantize(sum(values, Decimal("0")) / len(values), precision)


def _check_not_after(reference_time: ReferenceTime, row: Any) -> None:
    if reference_time.days_since(row["order_date"]) < 0:
        raise ValueError(
            f"Order {row['order_id']} is dated {row['order_date']}, after the "
            f"reference date {reference_time.isoformat()}"
        )


def order_value_progression(
    orders: Recordset,
    max_sequence: int = DEFAULT_MAX_SEQUENCE,
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Order value statistics by each customer's order sequence number.

    Orders are numbered per customer by (order_date, order_id); only
    sequence numbers up to ``max_sequence`` are reported. Adds
    prev_avg_order_value (the previous sequence's average) and avg_growth
    (the difference). stddev_order_value is the sample standard deviation
    and is None when a sequence has a single order.

    Rows are ordered by order_sequence.
    """
    if max_sequence < 1:
        raise ValueError(f"max_sequence must be >= 1, got {max_sequence}")
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")

    numbered = apply_window(
        orders,
        {"order_sequence": ops.row_number},
        partition_by=["customer_id"],
        order_by=["order_date", "order_id"],
        parallel=parallel,
    )

    customers: dict[int, set] = {}
    amounts: dict[int, list[Decimal]] = {}
    for row in numbered:
        sequence = row["order_sequence"]
        if sequence > max_sequence:
            continue
        customers.setdefault(sequence, set()).add(row["customer_id"])
        amounts.setdefault(sequence, []).append(to_decimal(row["total_amount"]))

    progression = Recordset(
        "order_value_progression",
        ORDER_VALUE_PROGRESSION_COLUMNS,
        (
            {
                "order_sequence": sequence,
                "customer_count": len(customers[sequence]),
                "avg_order_value": _mean(amounts[sequence]),
                "min_order_value": min(amounts[sequence]),
                "max_order_value": max(amounts[sequence]),
                "stddev_order_value": (
                    quantize(statistics.stdev(amounts[sequence]), MONEY_PRECISION)
                    if len(amounts[sequence]) > 1
                    else None
                ),
            }
            for sequence in sorted(amounts)
        ),
    )

    def growth(partition):
        return [
            None if previous is None else current - previous
            for current, previous in zip(
                partition.values("avg_order_value"), ops.lag(partition, "avg_order_value")
            )
        ]

    return apply_window(
        progression,
        {
            "prev_avg_order_value": lambda p: ops.lag(p, "avg_order_value"),
            "avg_growth": growth,
        },
        order_by=["order_sequence"],
    )


def purchase_segment(purchase_count: int) -> str:
    if purchase_count == 0:
        return "No Purchases"
    if purchase_count == 1:
        return "One-Time Buyer"
    if purchase_count <= 5:
        return "Regular Buyer"
    return "Loyal Customer"


def activity_status(days_since_last_order: Optional[int]) -> str:
    """Active within 30 days, Dormant within 90, otherwise Inactive.

    Customers who never ordered are Inactive.
    """
    if days_since_last_order is None or days_since_last_order > DORMANT_DAYS:
        return "Inactive"
    if days_since_last_order <= ACTIVE_DAYS:
        return "Active"
    return "Dormant"


def segment_performance(
    customers: Recordset,
    orders: Recordset,
    reference_time: ReferenceTime | Any,
) -> Recordset:
    """Customer counts and averages per (purchase_segment, activity_status).

    Every customer is counted, including those without orders. Spend and
    age averages cover only customers with orders, so they are None for
    the "No Purchases" segment. avg_customer_age_days is the mean span
    between first and last order, in whole days.

    Rows are ordered by customer_count descending, then segment and status.

    Raises
    ------
    ValueError
        If any order is dated after the reference date.
    """
    reference_time = ReferenceTime.of(reference_time)
    customers.require_columns("customer_id")
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")

    order_ids: dict[str, set] = {}
    spent: dict[str, Decimal] = {}
    first: dict[str, Any] = {}
    last: dict[str, Any] = {}
    for row in orders:
        _check_not_after(reference_time, row)
        customer_id = row["customer_id"]
        order_ids.setdefault(customer_id, set()).add(row["order_id"])
        spent[customer_id] = spent.get(customer_id, Decimal("0")) + to_decimal(
            row["total_amount"]
        )
        order_date = row["order_date"]
        if customer_id not in first or order_date < first[customer_id]:
            first[customer_id] = order_date
        if customer_id not in last or order_date > last[customer_id]:
            last[customer_id] = order_date

    groups: dict[tuple[str, str], dict[str, list]] = {}
    for customer_id in customers.column("customer_id"):
        purchases = len(order_ids.get(customer_id, ()))
        days_since = (
            reference_time.days_since(last[customer_id]) if customer_id in last else None
        )
        group = groups.setdefault(
            (purchase_segment(purchases), activity_status(days_since)),
            {"purchases": [], "spent": [], "aov": [], "age": []},
        )
        group["purchases"].append(Decimal(purchases))
        if purchases:
            group["spent"].append(spent[customer_id])
            group["aov"].append(spent[customer_id] / purchases)
            group["age"].append(Decimal((last[customer_id] - first[customer_id]).days))

    performance = Recordset(
        "segment_performance",
        SEGMENT_PERFORMANCE_COLUMNS,
        (
            {
                "purchase_segment": segment,
                "activity_status": status,
                "customer_count": len(group["purchases"]),
                "avg_purchases": _mean(group["purchases"]),
                "avg_customer_value": _mean(group["spent"]),
                "avg_order_value": _mean(group["aov"]),
                "avg_customer_age_days": _mean(group["age"], WHOLE_DAYS),
            }
            for (segment, status), group in groups.items()
        ),
    )
    return order_recordset(
        performance, [("customer_count", "desc"), "purchase_segment", "activity_status"]
    )


def business_kpis(
    customers: Recordset,
    orders: Recordset,
    order_items: Recordset,
    products: Optional[Recordset] = None,
) -> Recordset:
    """Single-row headline metrics for the snapshot.

    Revenue is summed once per order, never per line item.
    total_products counts distinct products sold; total_categories counts
    their categories and is None without ``products``. days_of_operation
    spans the first to the last order date; avg_daily_revenue is None when
    that span is zero. Per-customer ratios divide by all customers,
    including those who never ordered.
    """
    customers.require_columns("customer_id")
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")
    order_items.require_columns("order_id", "product_id")

    total_customers = len(set(customers.column("customer_id")))
    total_orders = len(set(orders.column("order_id")))
    amounts = [to_decimal(a) for a in orders.column("total_amount")]
    revenue = sum(amounts, Decimal("0"))
    buyers = set(orders.column("customer_id"))

    sold = set(order_items.column("product_id"))
    total_categories = None
    if products is not None:
        catalog = products.index_by("product_id")
        sold = {product_id for product_id in sold if product_id in catalog}
        total_categories = len({catalog[p]["category_id"] for p in sold})

    dates = orders.column("order_date")
    days = (max(dates) - min(dates)).days if dates else None

    def per_customer(value: Decimal) -> Optional[Decimal]:
        if not total_customers:
            return None
        return quantize(value / total_customers, MONEY_PRECISION)

    return Recordset(
        "business_kpis",
        BUSINESS_KPI_COLUMNS,
        [
            {
                "total_customers": total_customers,
                "total_orders": total_orders,
                "total_revenue": quantize(revenue, MONEY_PRECISION),
                "avg_order_value": _mean(amounts),
                "revenue_per_customer": per_customer(revenue),
                "orders_per_customer": per_customer(Decimal(total_orders)),
                "customer_conversion_pct": percentage(len(buyers), total_customers),
                "total_products": len(sold),
                "total_categories": total_categories,
                "days_of_operation": days,
                "avg_daily_revenue": (
                    quantize(revenue / days, MONEY_PRECISION) if days else None
                ),
            }
        ],
    )


def category_scorecard(
    order_items: Recordset,
    orders: Recordset,
    products: Recordset,
    reference_time: ReferenceTime | Any,
    categories: Optional[Recordset] = None,
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Benchmark sold categories against each other on four metrics.

    Adds revenue_rank, volume_rank (order count), customer_reach_rank and
    transaction_value_rank (average line total), each a gapped rank in
    descending order, and overall_performance_score as their sum (lower is
    better). category_name is filled from ``categories`` when given.
    Categories with no sales do not appear.

    Rows are ordered by overall_performance_score, then total_revenue
    descending, then category_id.

    Raises
    ------
    ValueError
        If any order is dated after the reference date.
    """
    reference_time = ReferenceTime.of(reference_time)
    order_items.require_columns("order_id", "product_id", "quantity", "unit_price")
    orders.require_columns("order_id", "customer_id", "order_date")
    catalog = products.index_by("product_id")
    order_index = orders.index_by("order_id")
    names = (
        {row["category_id"]: row["category_name"] for row in categories}
        if categories is not None
        else {}
    )

    metrics: dict[str, dict[str, Any]] = {}
    for row in order_items:
        product = catalog.get(row["product_id"])
        order = order_index.get(row["order_id"])
        if product is None or order is None:
            continue
        _check_not_after(reference_time, order)
        m = metrics.setdefault(
            product["category_id"],
            {
                "products": set(),
                "orders": set(),
                "customers": set(),
                "units": 0,
                "lines": [],
                "last_sale": order["order_date"],
            },
        )
        m["products"].add(row["product_id"])
        m["orders"].add(row["order_id"])
        m["customers"].add(order["customer_id"])
        m["units"] += row["quantity"]
        m["lines"].append(to_decimal(row["quantity"]) * to_decimal(row["unit_price"]))
        m["last_sale"] = max(m["last_sale"], order["order_date"])

    rows = []
    for category_id in sorted(metrics):
        m = metrics[category_id]
        revenue = sum(m["lines"], Decimal("0"))
        rows.append(
            {
                "category_id": category_id,
                "category_name": names.get(category_id),
                "product_count": len(m["products"]),
                "order_count": len(m["orders"]),
                "customer_count": len(m["customers"]),
                "total_units_sold": m["units"],
                "total_revenue": quantize(revenue, MONEY_PRECISION),
                "avg_transaction_value": _mean(m["lines"]),
                "revenue_per_product": quantize(
                    revenue / len(m["products"]), MONEY_PRECISION
                ),
                "last_sale_date": m["last_sale"],
                "days_since_last_sale": reference_time.days_since(m["last_sale"]),
            }
        )

    scorecard = Recordset("category_scorecard", CATEGORY_SCORECARD_COLUMNS, rows)
    for rank_column, metric in CATEGORY_RANKS.items():
        scorecard = apply_window(
            scorecard, {rank_column: ops.rank}, order_by=[(metric, "desc")], parallel=parallel
        )
    scorecard = apply_window(
        scorecard,
        {
            "overall_performance_score": lambda p: [
                sum(row[column] for column in CATEGORY_RANKS) for row in p.rows
            ]
        },
    )
    return order_recordset(
        scorecard,
        ["overall_performance_score", ("total_revenue", "desc"), "category_id"],
    )
