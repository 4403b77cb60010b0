"""Apply window operators to a whole :class:`Recordset`.

``apply_window`` is the ``SELECT *, f() OVER (PARTITION BY ... ORDER BY ...)``
equivalent: it partitions and sorts the rows, evaluates every window function
per partition (optionally in parallel) and appends the results as new columns.
Output rows keep their input order.
"""

from __future__ import annotations

from typing import Any, Iterable, Literal, Mapping, Optional, Sequence

from commerce_analytics.foundation.periods import percentage
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.window.operators import WindowFunction, partition_total
from commerce_analytics.window.partition import (
    ParallelOptions,
    Partition,
    SortSpec,
    map_partitions,
    normalise_sort_keys,
    partition_rows,
)


def _check_fields(
    recordset: Recordset, partition_by: Sequence[str], order_by: Iterable[SortSpec]
) -> tuple:
    sort_keys = normalise_sort_keys(order_by)
    recordset.require_columns(*partition_by, *(k.field for k in sort_keys))
    return sort_keys


def _check_new_columns(recordset: Recordset, names: Iterable[str]) -> None:
    clashes = [n for n in names if n in recordset.columns]
    if clashes:
        raise ValueError(
            f"Columns {clashes} already exist in recordset '{recordset.name}'"
        )


def apply_window(
    recordset: Recordset,
    columns: Mapping[str, WindowFunction],
    partition_by: Sequence[str] = (),
    order_by: Iterable[SortSpec] = (),
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Append one column per window function.

    Parameters
    ----------
    recordset:
        Input rows
    columns:
        Output column name -> callable taking a :class:`Partition` and
        returning one value per partition row, in sort order
    partition_by:
        Partition-key fields
    order_by:
        Sort terms (``"field"``, ``("field", "desc")`` or ``SortKey``)
    parallel:
        Worker pool options for evaluating independent partitions

    Examples
    --------
    >>> from commerce_analytics.window import operators as ops
    >>> rs = Recordset("t", ["g", "v"], [{"g": 1, "v": 5}, {"g": 1, "v": 3}])
    >>> out = apply_window(rs, {"rn": ops.row_number}, partition_by=["g"], order_by=["v"])
    >>> out.column("rn")
    [2, 1]
    """
    partition_by = tuple(partition_by)
    sort_keys = _check_fields(recordset, partition_by, order_by)
    _check_new_columns(recordset, columns)

    partitions = partition_rows(recordset.rows, partition_by, sort_keys)

    def evaluate(partition: Partition) -> dict[str, list[Any]]:
        out: dict[str, list[Any]] = {}
        for name, func in columns.items():
            values = list(func(partition))
            if len(values) != len(partition):
                raise ValueError(
                    f"Window function for '{name}' returned {len(values)} values "
                    f"for a partition of {len(partition)} rows"
                )
            out[name] = values
        return out

    results = map_partitions(partitions, evaluate, parallel)

    extra: list[dict[str, Any]] = [{} for _ in range(len(recordset))]
    for partition, result in zip(partitions, results):
        for j, position in enumerate(partition.positions):
            extra[position] = {name: result[name][j] for name in columns}

    return Recordset(
        recordset.name,
        recordset.columns + tuple(columns),
        ({**row, **extra[i]} for i, row in enumerate(recordset.rows)),
    )


def with_share_of_total(
    recordset: Recordset,
    field: str,
    output: str,
    partition_by: Sequence[str] = (),
    scope: Literal["partition", "global"] = "partition",
    parallel: Optional[ParallelOptions] = None,
) -> Recordset:
    """Append ``field / total * 100`` (2 decimals) as ``output``.

    Partition-local totals are computed independently. With
    ``scope="global"`` the denominator is the grand total, which is only
    known once every partition-local total is complete. A zero denominator
    or an absent value yields an absent share.
    """
    if scope not in ("partition", "global"):
        raise ValueError(f"scope must be 'partition' or 'global', got {scope!r}")
    partition_by = tuple(partition_by)
    recordset.require_columns(field, *partition_by)
    _check_new_columns(recordset, [output])

    partitions = partition_rows(recordset.rows, partition_by)
    local_totals = map_partitions(
        partitions, lambda p: partition_total(p, field), parallel
    )

    # Barrier: every partition-local total is known past this point.
    if scope == "global":
        present = [t for t in local_totals if t is not None]
        grand_total = sum(present[1:], present[0]) if present else None
        denominators = [grand_total] * len(partitions)
    else:
        denominators = list(local_totals)

    shares: list[Any] = [None] * len(recordset)
    for partition, denominator in zip(partitions, denominators):
        for row, position in zip(partition.rows, partition.positions):
            shares[position] = percentage(row[field], denominator)

    return Recordset(
        recordset.name,
        recordset.columns + (output,),
        ({**row, output: shares[i]} for i, row in enumerate(recordset.rows)),
    )
