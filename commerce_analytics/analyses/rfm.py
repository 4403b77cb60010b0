"""RFM (Recency-Frequency-Monetary) scoring and segmentation.

RFM analysis segments customers based on three dimensions:
- Recency: How recently did the customer make a purchase?
- Frequency: How often do they purchase?
- Monetary: How much do they spend?

The computation is a three-stage pipeline::

    customer_metrics -> rfm_scoring -> rfm_segments

Quick Start
-----------
>>> from datetime import date
>>> from commerce_analytics.foundation import Order, Recordset
>>> orders = Recordset.from_records("orders", [
...     Order("O1", "C1", date(2024, 1, 1), 100),
...     Order("O2", "C1", date(2024, 2, 9), 50),
...     Order("O3", "C2", date(2024, 1, 1), 500),
... ])
>>> segments = calculate_rfm(orders, "2024-04-09")
>>> segments.column("recency_days")
[60, 99]
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from commerce_analytics.foundation.periods import to_decimal
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime
from commerce_analytics.pipeline.composer import Pipeline, Stage
from commerce_analytics.window import operators as ops
from commerce_analytics.window.apply import apply_window
from commerce_analytics.window.partition import ParallelOptions

logger = logging.getLogger(__name__)

DEFAULT_RFM_BINS = 5

CUSTOMER_METRIC_COLUMNS = ("customer_id", "recency_days", "frequency", "monetary")
RFM_COLUMNS = CUSTOMER_METRIC_COLUMNS + (
    "recency_score",
    "frequency_score",
    "monetary_score",
    "segment_label",
)

SEGMENT_CHAMPIONS = "Champions"
SEGMENT_LOYAL = "Loyal Customers"
SEGMENT_AT_RISK = "At Risk"
SEGMENT_CANT_LOSE = "Can't Lose Them"
SEGMENT_POTENTIAL_LOYALISTS = "Potential Loyalists"
SEGMENT_NEW_OR_LOST = "New/Lost"


def customer_order_metrics(
    orders: Recordset, reference_time: ReferenceTime | Any
) -> Recordset:
    """Aggregate orders into one row per customer.

    Parameters
    ----------
    orders:
        Orders recordset (order_id, customer_id, order_date, total_amount)
    reference_time:
        As-of date for recency. Accepts anything ``ReferenceTime.of`` does.

    Returns
    -------
    Recordset
        ``customer_metrics`` with customer_id, recency_days (days since the
        latest order), frequency (distinct orders) and monetary (total spend),
        in ascending customer_id order. Customers without orders do not appear.

    Raises
    ------
    ValueError
        If any order is dated after the reference date.
    """
    reference_time = ReferenceTime.of(reference_time)
    orders.require_columns("order_id", "customer_id", "order_date", "total_amount")

    last_order: dict[str, Any] = {}
    order_ids: dict[str, set] = {}
    spend: dict[str, Decimal] = {}
    for row in orders:
        if reference_time.days_since(row["order_date"]) < 0:
            raise ValueError(
                f"Order {row['order_id']} is dated {row['order_date']}, after the "
                f"reference date {reference_time.isoformat()}"
            )
        customer_id = row["customer_id"]
        if customer_id not in last_order or row["order_date"] > last_order[customer_id]:
            last_order[customer_id] = row["order_date"]
        order_ids.setdefault(customer_id, set()).add(row["order_id"])
        spend[customer_id] = spend.get(customer_id, Decimal("0")) + to_decimal(
            row["total_amount"]
        )

    return Recordset(
        "customer_metrics",
        CUSTOMER_METRIC_COLUMNS,
        (
            {
                "customer_id": customer_id,
                "recency_days": reference_time.days_since(last_order[customer_id]),
                "frequency": len(order_ids[customer_id]),
                "monetary": spend[customer_id],
            }
            for customer_id in sorted(last_order)
        ),
    )


def score_rfm(
    metrics: Recordset,
    bins: int = DEFAULT_RFM_BINS,
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Add 1..``bins`` scores for each RFM dimension (higher is better).

    Recency is bucketed over descending ``recency_days`` so the most recent
    customers land in the top bucket. Frequency and monetary are bucketed
    over ascending raw values. Ties keep the metrics' input order.
    """
    if bins < 1:
        raise ValueError(f"bins must be >= 1, got {bins}")
    metrics.require_columns(*CUSTOMER_METRIC_COLUMNS)

    def bucket(p):
        return ops.ntile(p, bins)

    scored = apply_window(
        metrics, {"recency_score": bucket}, order_by=[("recency_days", "desc")], parallel=parallel
    )
    scored = apply_window(
        scored, {"frequency_score": bucket}, order_by=["frequency"], parallel=parallel
    )
    scored = apply_window(
        scored, {"monetary_score": bucket}, order_by=["monetary"], parallel=parallel
    )
    return scored.rename("rfm_scoring")


def assign_segment(recency_score: int, frequency_score: int, monetary_score: int) -> str:
    """Map scores to a segment label; the first matching rule wins.

    >>> assign_segment(5, 4, 4)
    'Champions'
    >>> assign_segment(2, 3, 1)
    "Can't Lose Them"
    """
    r, f, m = recency_score, frequency_score, monetary_score
    if r >= 4 and f >= 4 and m >= 4:
        return SEGMENT_CHAMPIONS
    if r >= 3 and f >= 3 and m >= 3:
        return SEGMENT_LOYAL
    if r >= 3 and f <= 2:
        return SEGMENT_AT_RISK
    if r <= 2 and f >= 3:
        return SEGMENT_CANT_LOSE
    if r >= 3:
        return SEGMENT_POTENTIAL_LOYALISTS
    return SEGMENT_NEW_OR_LOST


def label_segments(scored: Recordset) -> Recordset:
    scored.require_columns("recency_score", "frequency_score", "monetary_score")
    return Recordset(
        "rfm_segments",
        RFM_COLUMNS,
        (
            {
                **{col: row[col] for col in RFM_COLUMNS[:-1]},
                "segment_label": assign_segment(
                    row["recency_score"], row["frequency_score"], row["monetary_score"]
                ),
            }
            for row in scored
        ),
    )


def rfm_stages(
    reference_time: ReferenceTime | Any,
    bins: int = DEFAULT_RFM_BINS,
    parallel: Optional[ParallelOptions] = None,
    orders_input: str = "orders",
) -> list[Stage]:
    """RFM stages reading orders from the ``orders_input`` pipeline input."""
    reference_time = ReferenceTime.of(reference_time)

    def metrics_stage(up: Mapping[str, Recordset]) -> Recordset:
        return customer_order_metrics(up[orders_input], reference_time)

    def scoring_stage(up: Mapping[str, Recordset]) -> Recordset:
        return score_rfm(up["customer_metrics"], bins, parallel)

    def segments_stage(up: Mapping[str, Recordset]) -> Recordset:
        return label_segments(up["rfm_scoring"])

    return [
        Stage("customer_metrics", metrics_stage, depends_on=(orders_input,)),
        Stage("rfm_scoring", scoring_stage, depends_on=("customer_metrics",)),
        Stage("rfm_segments", segments_stage, depends_on=("rfm_scoring",)),
    ]


def calculate_rfm(
    orders: Recordset,
    reference_time: ReferenceTime | Any,
    bins: int = DEFAULT_RFM_BINS,
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Run the RFM pipeline and return the ``rfm_segments`` recordset."""
    pipeline = Pipeline(rfm_stages(reference_time, bins, parallel), inputs=("orders",))
    result = pipeline.run({"orders": orders})["rfm_segments"]
    logger.info(f"Scored {len(result)} customers into RFM segments")
    return result
