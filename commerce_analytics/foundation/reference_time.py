"""Injectable "as-of" reference time.

Every recency or "as of" metric takes its reference date from a
:class:`ReferenceTime` supplied by the caller. Nothing in the engine reads
the system clock, so re-running on the same snapshot and reference time
reproduces the same output.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class ReferenceTime:
    """Fixed reference date used for all recency computations.

    Examples
    --------
    >>> ref = ReferenceTime.of("2024-04-10")
    >>> ref.days_since(date(2024, 1, 1))
    100
    """

    as_of: date

    def __post_init__(self) -> None:
        if isinstance(self.as_of, datetime):
            object.__setattr__(self, "as_of", self.as_of.date())
        elif not isinstance(self.as_of, date):
            raise TypeError(
                f"as_of must be a date or datetime, got {type(self.as_of).__name__}"
            )

    @classmethod
    def of(cls, value: ReferenceTime | date | datetime | str) -> ReferenceTime:
        """Coerce a ReferenceTime, date, datetime or ISO date string."""
        if isinstance(value, ReferenceTime):
            return value
        if isinstance(value, str):
            return cls(datetime.fromisoformat(value.replace("Z", "+00:00")).date())
        return cls(value)

    def days_since(self, d: date | datetime) -> int:
        """Whole days from ``d`` to the reference date (negative if ``d`` is later)."""
        if isinstance(d, datetime):
            d = d.date()
        return (self.as_of - d).days

    def isoformat(self) -> str:
        return self.as_of.isoformat()
