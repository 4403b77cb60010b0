"""Error taxonomy for the analytics engine.

Only conditions that abort a computation are exceptions. Two edge cases are
handled by policy instead of raising:

- A singleton partition has ``percent_rank`` 0.
- Growth with no previous period, or a previous value of exactly 0, is absent
  (``None``) and stays absent in every downstream column.
"""

from __future__ import annotations

from typing import Sequence


class AnalyticsError(Exception):
    """Base class for all analytics engine errors."""


class SchemaViolation(AnalyticsError, ValueError):
    """Input snapshot breaks a referential or uniqueness invariant.

    Raised before any computation starts. ``violations`` lists every problem
    found so the loader can report them all at once.
    """

    def __init__(self, violations: Sequence[str]):
        self.violations = tuple(violations)
        preview = "; ".join(self.violations[:5])
        more = len(self.violations) - 5
        if more > 0:
            preview += f"; ... and {more} more"
        super().__init__(f"{len(self.violations)} schema violation(s): {preview}")


class ConfigurationError(AnalyticsError, ValueError):
    """Pipeline definition is unusable (unknown dependency, cycle, duplicate)."""


class ResourceLimitExceeded(AnalyticsError):
    """An order has more line items than the basket analysis cap allows."""

    def __init__(self, order_id: str, item_count: int, limit: int):
        self.order_id = order_id
        self.item_count = item_count
        self.limit = limit
        super().__init__(
            f"Order {order_id} has {item_count} line items; basket cap is {limit}"
        )


class StageExecutionError(AnalyticsError, RuntimeError):
    """A pipeline stage failed; the whole run is aborted."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {type(cause).__name__}: {cause}")
