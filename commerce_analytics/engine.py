"""Standard analytics report over one validated snapshot.

The engine composes every analysis into a single :class:`Pipeline`. RFM and
churn share the ``customer_metrics`` stage; cohort retention keeps its own
staged chain; all other analyses depend only on the input recordsets and run
concurrently.

Quick Start
-----------
>>> from commerce_analytics import AnalyticsEngine, EngineSettings
>>> engine = AnalyticsEngine(EngineSettings(parallel_enabled=False))
>>> report = engine.run(snapshot, "2024-06-30")  # doctest: +SKIP
>>> report["rfm_segments"].column("segment_label")  # doctest: +SKIP
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

import structlog

from commerce_analytics.analyses import (
    basket,
    churn,
    clv,
    cohorts,
    growth,
    rankings,
    rfm,
    scorecards,
)
from commerce_analytics.config import EngineSettings
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.foundation.reference_time import ReferenceTime
from commerce_analytics.foundation.snapshot import Snapshot
from commerce_analytics.pipeline.composer import Pipeline, Stage

logger = structlog.get_logger(__name__)

REPORT_TABLES = (
    "rfm_segments",
    "churn_risk",
    "cohort_retention",
    "repeat_rate_by_cohort",
    "monthly_growth",
    "year_over_year_growth",
    "product_growth",
    "customer_order_trajectory",
    "basket_pairs",
    "order_value_distribution",
    "customer_value_bands",
    "order_value_progression",
    "segment_performance",
    "business_kpis",
    "product_sales_ranking",
    "category_scorecard",
)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class AnalyticsReport:
    """Output tables of one engine run.

    Attributes
    ----------
    reference_time:
        As-of date every recency metric was computed against
    tables:
        Report table name -> recordset. ``product_sales_ranking`` and
        ``category_scorecard`` are only present when the snapshot includes
        products.
    basket_skipped_orders:
        Orders left out of basket analysis for exceeding the line-item cap
    execution_time_ms:
        Wall-clock duration of the pipeline run
    """

    reference_time: ReferenceTime
    tables: Mapping[str, Recordset]
    basket_skipped_orders: tuple[str, ...] = ()
    execution_time_ms: float = 0.0
    stage_generations: list[list[str]] = field(default_factory=list)

    def __getitem__(self, name: str) -> Recordset:
        return self.tables[name]

    def __contains__(self, name: object) -> bool:
        return name in self.tables

    def as_dict(self) -> dict[str, Any]:
        """JSON-serialisable form: Decimal -> float, dates -> ISO strings."""
        return {
            "reference_date": self.reference_time.isoformat(),
            "basket_skipped_orders": list(self.basket_skipped_orders),
            "execution_time_ms": self.execution_time_ms,
            "tables": {
                name: [
                    {col: _json_value(value) for col, value in row.items()}
                    for row in recordset
                ]
                for name, recordset in self.tables.items()
            },
        }


class AnalyticsEngine:
    """Runs the standard report pipeline with one set of settings.

    With ``configure_logs=True`` the settings' log level and renderer are
    applied on construction; otherwise logging is left to the caller.
    """

    def __init__(
        self, settings: Optional[EngineSettings] = None, configure_logs: bool = False
    ):
        self.settings = settings or EngineSettings()
        if configure_logs:
            self.settings.configure_logging()

    def build_pipeline(
        self,
        reference_time: ReferenceTime,
        include_products: bool,
        include_categories: bool = False,
    ) -> Pipeline:
        """Assemble the report DAG for ``reference_time``.

        Category names are only read when products are also included.
        """
        settings = self.settings
        parallel = settings.parallel_options()

        inputs = ["customers", "orders", "order_items"]
        if include_products:
            inputs.append("products")
        include_categories = include_categories and include_products
        if include_categories:
            inputs.append("categories")

        stages = rfm.rfm_stages(reference_time, settings.rfm_bins, parallel)
        stages += cohorts.cohort_stages()
        stages += [
            Stage(
                "churn_risk",
                lambda up: churn.score_churn_risk(up["customer_metrics"]),
                depends_on=("customer_metrics",),
            ),
            Stage(
                "repeat_rate_by_cohort",
                lambda up: cohorts.repeat_rate_by_cohort(up["orders"]),
                depends_on=("orders",),
            ),
            Stage(
                "monthly_growth",
                lambda up: growth.monthly_growth(up["orders"]),
                depends_on=("orders",),
            ),
            Stage(
                "year_over_year_growth",
                lambda up: growth.year_over_year_growth(up["orders"]),
                depends_on=("orders",),
            ),
            Stage(
                "product_growth",
                lambda up: growth.product_growth(
                    up["order_items"], up["orders"], reference_time
                ),
                depends_on=("order_items", "orders"),
            ),
            Stage(
                "customer_order_trajectory",
                lambda up: growth.customer_order_trajectory(up["orders"]),
                depends_on=("orders",),
            ),
            Stage(
                "basket_pairs",
                lambda up: basket.co_occurrence(
                    up["order_items"],
                    up["orders"],
                    min_support=settings.basket_min_support,
                    max_items_per_order=settings.basket_max_items_per_order,
                ).pairs,
                depends_on=("order_items", "orders"),
            ),
            Stage(
                "basket_skipped_orders",
                lambda up: basket.oversized_orders(
                    up["order_items"], settings.basket_max_items_per_order
                ),
                depends_on=("order_items",),
            ),
            Stage(
                "order_value_distribution",
                lambda up: rankings.order_value_distribution(up["orders"]),
                depends_on=("orders",),
            ),
            Stage(
                "customer_value_bands",
                lambda up: clv.customer_value_bands(up["orders"], reference_time, parallel),
                depends_on=("orders",),
            ),
            Stage(
                "order_value_progression",
                lambda up: scorecards.order_value_progression(up["orders"], parallel=parallel),
                depends_on=("orders",),
            ),
            Stage(
                "segment_performance",
                lambda up: scorecards.segment_performance(
                    up["customers"], up["orders"], reference_time
                ),
                depends_on=("customers", "orders"),
            ),
            Stage(
                "business_kpis",
                lambda up: scorecards.business_kpis(
                    up["customers"], up["orders"], up["order_items"], up.get("products")
                ),
                depends_on=("customers", "orders", "order_items")
                + (("products",) if include_products else ()),
            ),
        ]
        if include_products:
            category_inputs = ("order_items", "orders", "products")
            if include_categories:
                category_inputs += ("categories",)
            stages += [
                Stage(
                    "product_sales_ranking",
                    lambda up: rankings.product_sales_ranking(
                        up["order_items"], up["products"], parallel=parallel
                    ),
                    depends_on=("order_items", "products"),
                ),
                Stage(
                    "category_scorecard",
                    lambda up: scorecards.category_scorecard(
                        up["order_items"],
                        up["orders"],
                        up["products"],
                        reference_time,
                        categories=up.get("categories"),
                        parallel=parallel,
                    ),
                    depends_on=category_inputs,
                ),
            ]
        return Pipeline(stages, inputs=inputs)

    def run(
        self, snapshot: Snapshot, reference_time: ReferenceTime | date | datetime | str
    ) -> AnalyticsReport:
        """Compute every report table for ``snapshot`` as of ``reference_time``.

        Raises
        ------
        StageExecutionError
            If any analysis fails; no partial report is returned.
        """
        reference_time = ReferenceTime.of(reference_time)
        include_products = snapshot.products is not None
        include_categories = include_products and snapshot.categories is not None
        pipeline = self.build_pipeline(reference_time, include_products, include_categories)

        inputs = {
            "customers": snapshot.customers,
            "orders": snapshot.orders,
            "order_items": snapshot.order_items,
        }
        if include_products:
            inputs["products"] = snapshot.products
        if include_categories:
            inputs["categories"] = snapshot.categories

        logger.info(
            "analytics_run_starting",
            reference_date=reference_time.isoformat(),
            customers=len(snapshot.customers),
            orders=len(snapshot.orders),
            order_items=len(snapshot.order_items),
            stages=len(pipeline.stage_names),
        )
        result = pipeline.run(inputs)

        tables = {name: result[name] for name in REPORT_TABLES if name in result}
        skipped = tuple(result["basket_skipped_orders"].column("order_id"))
        if skipped:
            logger.warning(
                "basket_orders_skipped",
                count=len(skipped),
                max_items_per_order=self.settings.basket_max_items_per_order,
            )
        logger.info(
            "analytics_run_completed",
            tables=len(tables),
            execution_time_ms=result.execution_time_ms,
        )
        return AnalyticsReport(
            reference_time=reference_time,
            tables=tables,
            basket_skipped_orders=skipped,
            execution_time_ms=result.execution_time_ms,
            stage_generations=result.generations,
        )
