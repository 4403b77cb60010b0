"""Window operators evaluated over one sorted :class:`Partition`.

Each operator returns a list aligned with ``partition.rows`` (sort order).
Positions are 1-indexed. Absent results are ``None``, never an exception.

Quick Start
-----------
>>> from commerce_analytics.window.partition import partition_rows
>>> rows = [{"v": 10}, {"v": 20}, {"v": 10}]
>>> [p] = partition_rows(rows, order_by=["v"])
>>> rank(p), dense_rank(p), row_number(p)
([1, 1, 3], [1, 1, 2], [1, 2, 3])
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Optional

from commerce_analytics.window.partition import Partition

RUNNING_FUNCTIONS = ("sum", "avg", "count", "min", "max")


def row_number(partition: Partition) -> list[int]:
    """Position in partition; ties keep stable input order."""
    return list(range(1, len(partition) + 1))


def rank(partition: Partition) -> list[int]:
    """Peers share a rank; the next distinct value jumps to its row position."""
    ranks: list[int] = []
    current = 0
    for i, values in enumerate(partition.order_values):
        if i == 0 or values != partition.order_values[i - 1]:
            current = i + 1
        ranks.append(current)
    return ranks


def dense_rank(partition: Partition) -> list[int]:
    """Peers share a rank; the next distinct value increments by exactly 1."""
    ranks: list[int] = []
    current = 0
    for i, values in enumerate(partition.order_values):
        if i == 0 or values != partition.order_values[i - 1]:
            current += 1
        ranks.append(current)
    return ranks


def lag(partition: Partition, field: str, offset: int = 1) -> list[Any]:
    """Value of ``field`` ``offset`` rows earlier; None before partition start."""
    if offset < 0:
        raise ValueError(f"lag offset must be >= 0, got {offset}")
    values = partition.values(field)
    return [values[i - offset] if i - offset >= 0 else None for i in range(len(values))]


def lead(partition: Partition, field: str, offset: int = 1) -> list[Any]:
    """Value of ``field`` ``offset`` rows later; None past partition end."""
    if offset < 0:
        raise ValueError(f"lead offset must be >= 0, got {offset}")
    values = partition.values(field)
    n = len(values)
    return [values[i + offset] if i + offset < n else None for i in range(n)]


def running_aggregate(partition: Partition, field: str, fn: str = "sum") -> list[Any]:
    """Cumulative ``fn`` from partition start through the current row.

    The frame is ``ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW``, so
    peers are not pulled into each other's frame. Absent inputs are ignored.
    ``sum``/``avg``/``min``/``max`` stay absent until a non-absent value is
    seen; ``count`` counts non-absent values.
    """
    if fn not in RUNNING_FUNCTIONS:
        raise ValueError(f"Unsupported running aggregate '{fn}'; use one of {RUNNING_FUNCTIONS}")

    results: list[Any] = []
    total: Any = None
    count = 0
    low: Any = None
    high: Any = None
    for value in partition.values(field):
        if value is not None:
            count += 1
            total = value if total is None else total + value
            low = value if low is None or value < low else low
            high = value if high is None or value > high else high

        if fn == "sum":
            results.append(total)
        elif fn == "count":
            results.append(count)
        elif fn == "avg":
            results.append(None if count == 0 else _divide(total, count))
        elif fn == "min":
            results.append(low)
        else:
            results.append(high)
    return results


def _divide(total: Any, count: int) -> Any:
    if isinstance(total, Decimal):
        return total / Decimal(count)
    return total / count


def ntile(partition: Partition, buckets: int) -> list[int]:
    """Split the partition into ``buckets`` groups as evenly as possible.

    With ``k`` rows, every bucket gets ``k // buckets`` rows and the first
    ``k % buckets`` buckets get one extra. Assignment follows sort order.

    >>> from commerce_analytics.window.partition import partition_rows
    >>> [p] = partition_rows([{"v": i} for i in range(7)], order_by=["v"])
    >>> ntile(p, 3)
    [1, 1, 1, 2, 2, 3, 3]
    """
    if buckets < 1:
        raise ValueError(f"ntile bucket count must be >= 1, got {buckets}")

    size = len(partition)
    base, extra = divmod(size, buckets)
    assignments: list[int] = []
    for bucket in range(1, buckets + 1):
        bucket_size = base + (1 if bucket <= extra else 0)
        if bucket_size == 0:
            break
        assignments.extend([bucket] * bucket_size)
    return assignments


def percent_rank(partition: Partition) -> list[float]:
    """``(rank - 1) / (partition_size - 1)``; 0.0 for a singleton partition."""
    size = len(partition)
    if size <= 1:
        return [0.0] * size
    return [(r - 1) / (size - 1) for r in rank(partition)]


def partition_count(partition: Partition) -> list[int]:
    """``COUNT(*) OVER (PARTITION BY ...)`` for every row."""
    return [len(partition)] * len(partition)


def partition_total(partition: Partition, field: str) -> Optional[Any]:
    """Sum of non-absent ``field`` values; None when all are absent."""
    total: Any = None
    for value in partition.values(field):
        if value is not None:
            total = value if total is None else total + value
    return total


WindowFunction = Callable[[Partition], list]
