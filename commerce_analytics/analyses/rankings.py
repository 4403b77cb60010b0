"""Product sales rankings and order value distribution."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from commerce_analytics.foundation.periods import (
    MONEY_PRECISION,
    add_months,
    quantize,
    to_decimal,
)
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime
from commerce_analytics.window import operators as ops
from commerce_analytics.window.apply import apply_window, with_share_of_total
from commerce_analytics.window.partition import ParallelOptions, order_recordset

logger = logging.getLogger(__name__)

PRODUCT_SALES_COLUMNS = (
    "product_id",
    "product_name",
    "category_id",
    "total_units",
    "total_revenue",
    "order_count",
)


def product_sales(order_items: Recordset, products: Recordset) -> Recordset:
    """Units, revenue and distinct orders per sold product, by product_id.

    Only products present in ``products`` are reported.
    """
    order_items.require_columns("order_id", "product_id", "quantity", "unit_price")
    catalog = products.index_by("product_id")

    units: dict[str, int] = {}
    revenue: dict[str, Decimal] = {}
    order_ids: dict[str, set] = {}
    for row in order_items:
        product_id = row["product_id"]
        if product_id not in catalog:
            continue
        units[product_id] = units.get(product_id, 0) + row["quantity"]
        revenue[product_id] = revenue.get(product_id, Decimal("0")) + (
            to_decimal(row["quantity"]) * to_decimal(row["unit_price"])
        )
        order_ids.setdefault(product_id, set()).add(row["order_id"])

    return Recordset(
        "product_sales",
        PRODUCT_SALES_COLUMNS,
        (
            {
                "product_id": product_id,
                "product_name": catalog[product_id]["product_name"],
                "category_id": catalog[product_id]["category_id"],
                "total_units": units[product_id],
                "total_revenue": revenue[product_id],
                "order_count": len(order_ids[product_id]),
            }
            for product_id in sorted(units)
        ),
    )


def product_sales_ranking(
    order_items: Recordset,
    products: Recordset,
    top_n: Optional[int] = None,
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Rank products by revenue within their category and overall.

    Adds rank_in_category (gaps on ties), row_number_in_category,
    overall_dense_rank, cumulative_revenue (running total over all products
    by descending revenue), pct_of_category_revenue and pct_of_total_revenue.
    Revenue ties are broken by product_id. With ``top_n`` only products
    whose rank_in_category is at most ``top_n`` are kept.

    Rows are ordered by descending revenue.
    """
    if top_n is not None and top_n < 1:
        raise ValueError(f"top_n must be >= 1, got {top_n}")

    sales = product_sales(order_items, products)
    by_revenue = [("total_revenue", "desc")]

    ranked = apply_window(
        sales,
        {"rank_in_category": ops.rank, "row_number_in_category": ops.row_number},
        partition_by=["category_id"],
        order_by=by_revenue,
        parallel=parallel,
    )
    ranked = apply_window(
        ranked,
        {
            "overall_dense_rank": ops.dense_rank,
            "cumulative_revenue": lambda p: ops.running_aggregate(p, "total_revenue", "sum"),
        },
        order_by=by_revenue,
    )
    ranked = with_share_of_total(
        ranked,
        "total_revenue",
        "pct_of_category_revenue",
        partition_by=["category_id"],
        parallel=parallel,
    )
    ranked = with_share_of_total(
        ranked,
        "total_revenue",
        "pct_of_total_revenue",
        partition_by=["category_id"],
        scope="global",
        parallel=parallel,
    )

    if top_n is not None:
        ranked = ranked.filter(lambda row: row["rank_in_category"] <= top_n)
    return order_recordset(ranked.rename("product_sales_ranking"), by_revenue)


def order_value_distribution(
    orders: Recordset,
    reference_time: Optional[ReferenceTime | Any] = None,
    lookback_months: Optional[int] = None,
) -> Recordset:
    """Position of every order within the order value distribution.

    Adds percentile_rank (``percent_rank * 100``, 2 decimals), quartile,
    decile, avg_order_value and deviation_from_avg. With ``lookback_months``
    only orders in ``[reference - lookback_months, reference]`` are included,
    which requires ``reference_time``.

    Rows are ordered by total_amount descending.
    """
    orders.require_columns("order_id", "order_date", "total_amount")
    if lookback_months is not None:
        if reference_time is None:
            raise ValueError("lookback_months requires a reference_time")
        if lookback_months < 0:
            raise ValueError(f"lookback_months must be >= 0, got {lookback_months}")
        as_of = ReferenceTime.of(reference_time).as_of
        window_start = add_months(as_of, -lookback_months)
        orders = orders.filter(lambda row: window_start <= row["order_date"] <= as_of)

    amounts = [to_decimal(a) for a in orders.column("total_amount")]
    average = (
        quantize(sum(amounts, Decimal("0")) / len(amounts), MONEY_PRECISION)
        if amounts
        else None
    )

    distribution = apply_window(
        orders,
        {
            "percentile_rank": lambda p: [
                quantize(Decimal(str(pr)) * 100) for pr in ops.percent_rank(p)
            ],
            "quartile": lambda p: ops.ntile(p, 4),
            "decile": lambda p: ops.ntile(p, 10),
            "avg_order_value": lambda p: [average] * len(p),
            "deviation_from_avg": lambda p: [
                to_decimal(v) - average for v in p.values("total_amount")
            ],
        },
        order_by=["total_amount"],
    )
    return order_recordset(
        distribution.rename("order_value_distribution"), [("total_amount", "desc")]
    )
