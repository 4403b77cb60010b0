"""Calendar-month arithmetic and decimal/percentage helpers."""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

# Standard precision for money and percentages (2 decimal places)
PERCENTAGE_PRECISION = Decimal("0.01")
MONEY_PRECISION = Decimal("0.01")


def to_decimal(value: object) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f"Expected numeric value, got {type(value).__name__}")
    return Decimal(str(value))


def quantize(value: Decimal, precision: Decimal = PERCENTAGE_PRECISION) -> Decimal:
    return value.quantize(precision, rounding=ROUND_HALF_UP)


def percentage(part: object, whole: object) -> Optional[Decimal]:
    """Return ``part / whole * 100`` rounded to 2 decimals.

    Absent (None) when either side is absent or ``whole`` is zero.

    >>> percentage(3, 4)
    Decimal('75.00')
    >>> percentage(1, 0) is None
    True
    """
    if part is None or whole is None:
        return None
    whole_dec = to_decimal(whole)
    if whole_dec == 0:
        return None
    return quantize(to_decimal(part) / whole_dec * 100)


def month_key(d: date | datetime) -> str:
    """Calendar month label, e.g. ``"2023-01"``."""
    return f"{d.year:04d}-{d.month:02d}"


def month_index(d: date | datetime) -> int:
    """Months since year 0; differences give whole calendar months."""
    return d.year * 12 + (d.month - 1)


def month_key_index(key: str) -> int:
    year, month = key.split("-")
    return int(year) * 12 + int(month) - 1


def index_to_month_key(index: int) -> str:
    year, month0 = divmod(index, 12)
    return f"{year:04d}-{month0 + 1:02d}"


def months_between(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month."""
    return month_index(end) - month_index(start)


def add_months(d: date, months: int) -> date:
    """Shift ``d`` by whole months, clamping the day to the target month's length.

    >>> add_months(date(2023, 3, 31), -1)
    datetime.date(2023, 2, 28)
    """
    year, month0 = divmod(month_index(d) + months, 12)
    month = month0 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)
