"""Rule-based churn risk tiers from recency and frequency."""

from __future__ import annotations

from typing import Any, Optional

from commerce_analytics.analyses.rfm import customer_order_metrics
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime

CHURN_COLUMNS = ("customer_id", "recency_days", "frequency", "risk_tier", "risk_score")

CRITICAL_RISK = "Critical Risk"
HIGH_RISK = "High Risk"
MEDIUM_RISK = "Medium Risk"
LOW_RISK = "Low Risk"
STABLE = "Stable"

# Ordinal severity per tier
RISK_SCORES = {
    CRITICAL_RISK: 5,
    HIGH_RISK: 4,
    MEDIUM_RISK: 3,
    LOW_RISK: 2,
    STABLE: 1,
}


def classify_churn_risk(recency_days: int, frequency: int) -> str:
    """Return the churn tier; rules are tried in order of severity.

    >>> classify_churn_risk(200, 1)
    'Critical Risk'
    >>> classify_churn_risk(95, 5)
    'Medium Risk'
    """
    if recency_days > 180 and frequency < 2:
        return CRITICAL_RISK
    if recency_days > 120 and frequency < 3:
        return HIGH_RISK
    if recency_days > 90 or frequency < 2:
        return MEDIUM_RISK
    if recency_days > 60:
        return LOW_RISK
    return STABLE


def score_churn_risk(metrics: Recordset) -> Recordset:
    """Classify every row of a ``customer_metrics`` recordset."""
    metrics.require_columns("customer_id", "recency_days", "frequency")
    rows = []
    for row in metrics:
        tier = classify_churn_risk(row["recency_days"], row["frequency"])
        rows.append(
            {
                "customer_id": row["customer_id"],
                "recency_days": row["recency_days"],
                "frequency": row["frequency"],
                "risk_tier": tier,
                "risk_score": RISK_SCORES[tier],
            }
        )
    return Recordset("churn_risk", CHURN_COLUMNS, rows)


def calculate_churn_risk(
    orders: Recordset,
    reference_time: ReferenceTime | Any,
    metrics: Optional[Recordset] = None,
) -> Recordset:
    """Churn tiers for every customer with orders.

    Pass precomputed ``metrics`` (from :func:`customer_order_metrics`) to
    avoid aggregating the orders twice.
    """
    if metrics is None:
        metrics = customer_order_metrics(orders, reference_time)
    return score_churn_risk(metrics)
