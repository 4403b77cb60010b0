"""Window-function and staged-pipeline analytics over commerce snapshots.

The package computes rankings, running aggregates, percentile buckets,
cohort retention, growth rates, RFM/churn scores and product co-occurrence
from immutable in-memory recordsets, with deterministic tie-breaking and an
explicit reference time.
"""

from commerce_analytics.config import EngineSettings
from commerce_analytics.engine import AnalyticsEngine, AnalyticsReport
from commerce_analytics.errors import (
    AnalyticsError,
    ConfigurationError,
    ResourceLimitExceeded,
    SchemaViolation,
    StageExecutionError,
)
from commerce_analytics.foundation import Recordset, ReferenceTime, Snapshot
from commerce_analytics.logging_config import configure_logging

__version__ = "0.1.0"

__all__ = [
    "AnalyticsEngine",
    "AnalyticsError",
    "AnalyticsReport",
    "ConfigurationError",
    "EngineSettings",
    "Recordset",
    "ReferenceTime",
    "ResourceLimitExceeded",
    "SchemaViolation",
    "Snapshot",
    "StageExecutionError",
    "configure_logging",
]
