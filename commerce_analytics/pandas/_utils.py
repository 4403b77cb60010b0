"""Shared utilities for pandas conversion operations."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pandas as pd  # type: ignore


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def float_to_decimal(value: float) -> Decimal:
    """Convert float to Decimal via its shortest string form.

    Warning:
        Floats with >15 significant digits may lose precision due to
        float representation limits. For exact money values, keep Decimal
        columns in a Recordset instead of round-tripping through pandas.

    Raises:
        TypeError: If value is not numeric

    Example:
        >>> float_to_decimal(123.45)
        Decimal('123.45')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    return Decimal(str(value))


def is_missing(value: Any) -> bool:
    """True for None, NaN and NaT."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # Array-like cells are never "missing" as a whole
        return False


def to_python_date(value: Any) -> date:
    """Convert a pandas Timestamp, datetime or ISO string to ``date``."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return pd.Timestamp(value).date()
    raise TypeError(f"Expected a date-like value, got {type(value).__name__}")
