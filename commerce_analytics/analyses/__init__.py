"""Derived analytics built on the window operators and staged pipelines.

Each module turns input recordsets into one or more output recordsets with a
fixed column schema:

- rfm: RFM scores and segments
- churn: rule-based churn risk tiers
- cohorts: cohort retention and repeat rate by cohort
- growth: MoM, YoY, per-product and order-to-order growth
- basket: product co-occurrence counts
- rankings: product sales rankings and order value distribution
- clv: heuristic customer value bands
- scorecards: order value progression, segment performance, KPIs and
  category scorecard
"""

from .basket import BasketResult, co_occurrence, oversized_orders
from .churn import calculate_churn_risk, classify_churn_risk, score_churn_risk
from .clv import customer_value_bands
from .cohorts import cohort_retention, repeat_rate_by_cohort
from .growth import (
    calculate_growth,
    customer_order_trajectory,
    growth_pct,
    monthly_growth,
    product_growth,
    year_over_year_growth,
)
from .rankings import order_value_distribution, product_sales_ranking
from .rfm import (
    assign_segment,
    calculate_rfm,
    customer_order_metrics,
    label_segments,
    score_rfm,
)
from .scorecards import (
    activity_status,
    business_kpis,
    category_scorecard,
    order_value_progression,
    purchase_segment,
    segment_performance,
)

__all__ = [
    "BasketResult",
    "activity_status",
    "assign_segment",
    "business_kpis",
    "calculate_churn_risk",
    "calculate_growth",
    "calculate_rfm",
    "category_scorecard",
    "classify_churn_risk",
    "co_occurrence",
    "cohort_retention",
    "customer_order_metrics",
    "customer_order_trajectory",
    "customer_value_bands",
    "growth_pct",
    "label_segments",
    "monthly_growth",
    "order_value_distribution",
    "order_value_progression",
    "oversized_orders",
    "product_growth",
    "product_sales_ranking",
    "purchase_segment",
    "repeat_rate_by_cohort",
    "score_churn_risk",
    "score_rfm",
    "segment_performance",
    "year_over_year_growth",
]
