"""End-to-end tests for the analytics engine report."""

import json
from datetime import date
from decimal import Decimal

import pytest

from commerce_analytics import (
    AnalyticsEngine,
    EngineSettings,
    Snapshot,
    StageExecutionError,
)
from commerce_analytics.engine import REPORT_TABLES
from commerce_analytics.foundation.entities import (
    Category,
    Customer,
    Order,
    OrderItem,
    Product,
)


def build_snapshot(with_products=True, future_order=False, with_categories=False):
    customers = [
        Customer("C1", date(2023, 1, 1), customer_name="Ada"),
        Customer("C2", date(2023, 2, 1)),
        Customer("C3", date(2023, 3, 1)),
    ]
    orders = [
        Order("O1", "C1", date(2024, 1, 5), Decimal("60.00")),
        Order("O2", "C1", date(2024, 2, 10), Decimal("35.00")),
        Order("O3", "C2", date(2024, 2, 12), Decimal("40.00")),
        Order("O4", "C2", date(2024, 5, 20), Decimal("80.00")),
    ]
    if future_order:
        orders.append(Order("O5", "C1", date(2024, 8, 1), Decimal("10.00")))
    items = [
        OrderItem("I1", "O1", "P1", 2, Decimal("20.00")),
        OrderItem("I2", "O1", "P2", 1, Decimal("20.00")),
        OrderItem("I3", "O2", "P1", 1, Decimal("20.00")),
        OrderItem("I4", "O2", "P3", 1, Decimal("15.00")),
        OrderItem("I5", "O3", "P1", 1, Decimal("20.00")),
        OrderItem("I6", "O3", "P2", 1, Decimal("20.00")),
        OrderItem("I7", "O4", "P1", 1, Decimal("20.00")),
        OrderItem("I8", "O4", "P2", 3, Decimal("20.00")),
        OrderItem("I9", "O4", "P3", 1, Decimal("0.00")),
    ]
    products = None
    if with_products:
        products = [
            Product("P1", "Mug", "kitchen"),
            Product("P2", "Plate", "kitchen"),
            Product("P3", "Card", "stationery"),
        ]
    categories = None
    if with_categories:
        categories = [Category("kitchen", "Kitchen"), Category("stationery", "Stationery")]
    return Snapshot.from_records(
        customers, orders, items, products=products, categories=categories
    )


@pytest.fixture
def engine():
    return AnalyticsEngine(EngineSettings(parallel_enabled=False, basket_min_support=2))


class TestAnalyticsEngine:
    """Test the full report pipeline."""

    def test_all_tables_present(self, engine):
        report = engine.run(build_snapshot(), "2024-06-30")
        assert set(report.tables) == set(REPORT_TABLES)
        assert report.reference_time.isoformat() == "2024-06-30"
        assert report.basket_skipped_orders == ()

    def test_product_ranking_requires_products(self, engine):
        report = engine.run(build_snapshot(with_products=False), "2024-06-30")
        assert "product_sales_ranking" not in report
        assert "category_scorecard" not in report
        assert report["business_kpis"][0]["total_categories"] is None
        assert "basket_pairs" in report

    def test_customers_without_orders_excluded(self, engine):
        """C3 never ordered and is absent from customer-level tables."""
        report = engine.run(build_snapshot(), "2024-06-30")
        assert report["rfm_segments"].column("customer_id") == ["C1", "C2"]
        assert sorted(report["churn_risk"].column("customer_id")) == ["C1", "C2"]
        assert sorted(report["customer_value_bands"].column("customer_id")) == ["C1", "C2"]

    def test_basket_pairs(self, engine):
        report = engine.run(build_snapshot(), "2024-06-30")
        pairs = report["basket_pairs"].to_dicts()
        assert pairs[0] == {
            "product_id_low": "P1",
            "product_id_high": "P2",
            "co_occurrence_count": 3,
            "pct_of_all_orders": Decimal("75.00"),
        }

    def test_basket_cap_reports_skipped_orders(self):
        engine = AnalyticsEngine(
            EngineSettings(parallel_enabled=False, basket_max_items_per_order=2)
        )
        report = engine.run(build_snapshot(), "2024-06-30")
        assert report.basket_skipped_orders == ("O4",)

    def test_stage_generations(self, engine):
        """Shared customer metrics run first; the cohort chain runs longest."""
        report = engine.run(build_snapshot(), "2024-06-30")
        generations = report.stage_generations
        assert "customer_metrics" in generations[0]
        assert "basket_pairs" in generations[0]
        assert "churn_risk" in generations[1]
        assert "rfm_scoring" in generations[1]
        assert "rfm_segments" in generations[2]
        assert generations[-1] == ["cohort_retention"]

    def test_as_dict_is_json_serialisable(self, engine):
        report = engine.run(build_snapshot(), "2024-06-30")
        payload = json.loads(json.dumps(report.as_dict()))
        assert payload["reference_date"] == "2024-06-30"
        assert set(payload["tables"]) == set(REPORT_TABLES)
        first_order = payload["tables"]["customer_order_trajectory"][0]
        assert first_order["order_date"] == "2024-01-05"
        assert first_order["total_amount"] == 60.0

    def test_order_after_reference_aborts_run(self, engine):
        with pytest.raises(StageExecutionError, match="after the reference date"):
            engine.run(build_snapshot(future_order=True), "2024-06-30")

    def test_business_scorecards(self, engine):
        report = engine.run(build_snapshot(), "2024-06-30")
        [kpis] = report["business_kpis"].to_dicts()
        assert kpis["total_customers"] == 3
        assert kpis["total_revenue"] == Decimal("215.00")
        assert kpis["customer_conversion_pct"] == Decimal("66.67")
        assert kpis["days_of_operation"] == 136

        segments = report["segment_performance"].to_dicts()
        assert [(r["purchase_segment"], r["activity_status"]) for r in segments] == [
            ("No Purchases", "Inactive"),
            ("Regular Buyer", "Dormant"),
            ("Regular Buyer", "Inactive"),
        ]
        assert report["order_value_progression"].column("customer_count") == [2, 2]

    def test_category_scorecard(self, engine):
        report = engine.run(build_snapshot(with_categories=True), "2024-06-30")
        scorecard = report["category_scorecard"]
        assert scorecard.column("category_id") == ["kitchen", "stationery"]
        assert scorecard.column("category_name") == ["Kitchen", "Stationery"]
        assert scorecard.column("overall_performance_score") == [4, 7]
        assert "categories" in engine.build_pipeline(
            report.reference_time, include_products=True, include_categories=True
        ).inputs
