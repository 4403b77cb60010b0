"""Partition/Sort engine: stable multi-key sorting and partition detection.

Every window operator runs on the :class:`Partition` objects produced here.

Ordering rules
--------------
- Sorting is stable. Rows with equal sort-key values keep their input order,
  so ``row_number`` breaks ties deterministically by input position.
- Multi-key ordering applies one stable sort per key, least significant first.
- Absent values (None) sort after all other values in ascending order and
  before them in descending order. Absent values are peers of each other.
- Partitions are emitted in order of first appearance of their key.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from multiprocessing.pool import ThreadPool
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TypeVar, Union

from commerce_analytics.foundation.recordset import Recordset

T = TypeVar("T")

DEFAULT_PARALLEL_THRESHOLD = 1_000


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortKey:
    """One ``ORDER BY`` term."""

    field: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        direction = self.direction
        if not isinstance(direction, SortDirection):
            direction = SortDirection(str(direction).lower())
        object.__setattr__(self, "direction", direction)

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESC


SortSpec = Union[SortKey, str, tuple]


def normalise_sort_keys(order_by: Iterable[SortSpec]) -> tuple[SortKey, ...]:
    """Accept ``SortKey``, ``"field"`` or ``("field", "desc")`` terms."""
    keys = []
    for term in order_by:
        if isinstance(term, SortKey):
            keys.append(term)
        elif isinstance(term, str):
            keys.append(SortKey(term))
        elif isinstance(term, tuple) and len(term) == 2:
            keys.append(SortKey(term[0], term[1]))
        else:
            raise ValueError(f"Invalid sort term: {term!r}")
    return tuple(keys)


def _null_last_key(value: Any) -> tuple[bool, Any]:
    # (is_absent, value): absent values compare after present ones ascending
    return (value is None, value)


def stable_sort_indices(
    rows: Sequence[Mapping[str, Any]],
    indices: Iterable[int],
    sort_keys: Sequence[SortKey],
) -> list[int]:
    """Return ``indices`` ordered by ``sort_keys`` with stable tie-breaking."""
    ordered = list(indices)
    for key in reversed(sort_keys):
        ordered.sort(
            key=lambda i, f=key.field: _null_last_key(rows[i][f]),
            reverse=key.descending,
        )
    return ordered


@dataclass(frozen=True)
class Partition:
    """Ordered rows sharing one partition-key value.

    Attributes
    ----------
    key:
        Partition-key values (empty tuple when there is no ``PARTITION BY``)
    rows:
        Rows in sort order
    positions:
        Input position of each row, aligned with ``rows``
    order_values:
        Sort-key values of each row; equal tuples are peers for rank purposes
    """

    key: tuple
    rows: tuple[Mapping[str, Any], ...]
    positions: tuple[int, ...]
    order_values: tuple[tuple, ...]

    def __len__(self) -> int:
        return len(self.rows)

    def values(self, field: str) -> list[Any]:
        return [row[field] for row in self.rows]


def partition_rows(
    rows: Sequence[Mapping[str, Any]],
    partition_by: Sequence[str] = (),
    order_by: Iterable[SortSpec] = (),
) -> list[Partition]:
    """Split ``rows`` into partitions and sort each one.

    Examples
    --------
    >>> rows = [{"c": "A", "v": 2}, {"c": "B", "v": 1}, {"c": "A", "v": 1}]
    >>> parts = partition_rows(rows, partition_by=["c"], order_by=["v"])
    >>> [p.key for p in parts]
    [('A',), ('B',)]
    >>> parts[0].positions
    (2, 0)
    """
    sort_keys = normalise_sort_keys(order_by)
    partition_by = tuple(partition_by)

    groups: dict[tuple, list[int]] = {}
    for idx, row in enumerate(rows):
        groups.setdefault(tuple(row[f] for f in partition_by), []).append(idx)

    partitions: list[Partition] = []
    for key, indices in groups.items():
        ordered = stable_sort_indices(rows, indices, sort_keys)
        partitions.append(
            Partition(
                key=key,
                rows=tuple(rows[i] for i in ordered),
                positions=tuple(ordered),
                order_values=tuple(
                    tuple(rows[i][k.field] for k in sort_keys) for i in ordered
                ),
            )
        )
    return partitions


def order_recordset(recordset: Recordset, order_by: Iterable[SortSpec]) -> Recordset:
    """Return ``recordset`` with rows re-ordered by the stable sort rules."""
    sort_keys = normalise_sort_keys(order_by)
    recordset.require_columns(*(k.field for k in sort_keys))
    rows = recordset.rows
    ordered = stable_sort_indices(rows, range(len(rows)), sort_keys)
    return Recordset(recordset.name, recordset.columns, (rows[i] for i in ordered))


@dataclass(frozen=True)
class ParallelOptions:
    """Controls parallel evaluation of independent partitions.

    Attributes
    ----------
    enabled:
        Allow a worker pool at all
    threshold:
        Minimum number of partitions before a pool is used
    n_workers:
        Pool size. None uses the CPU count.
    """

    enabled: bool = True
    threshold: int = DEFAULT_PARALLEL_THRESHOLD
    n_workers: Optional[int] = None

    def workers(self) -> int:
        if self.n_workers is None:
            return os.cpu_count() or 1
        return max(1, self.n_workers)


def map_partitions(
    partitions: Sequence[Partition],
    func: Callable[[Partition], T],
    parallel: Optional[ParallelOptions] = None,
) -> list[T]:
    """Evaluate ``func`` on every partition; results are in partition order.

    Partitions share no mutable state, so they can be evaluated on a thread
    pool. The call returns only once every partition has finished, which
    makes it the synchronisation barrier for cross-partition reductions.

    The pool gives structural parallelism only: partition functions are pure
    Python and hold the GIL, so CPU-bound work does not run faster on it.
    A process pool is not an option because window functions are usually
    closures and rows are ``MappingProxyType`` objects, and neither pickles.
    """
    options = parallel or ParallelOptions()
    workers = options.workers()
    use_parallel = (
        options.enabled and workers > 1 and len(partitions) >= options.threshold
    )
    if not use_parallel:
        return [func(partition) for partition in partitions]

    with ThreadPool(processes=workers) as pool:
        return pool.map(func, partitions)
