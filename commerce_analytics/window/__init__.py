"""Partition/sort engine and window operator library."""

from .apply import apply_window, with_share_of_total
from .operators import (
    dense_rank,
    lag,
    lead,
    ntile,
    partition_count,
    percent_rank,
    rank,
    row_number,
    running_aggregate,
)
from .partition import (
    ParallelOptions,
    Partition,
    SortDirection,
    SortKey,
    map_partitions,
    order_recordset,
    partition_rows,
)

__all__ = [
    "apply_window",
    "with_share_of_total",
    "dense_rank",
    "lag",
    "lead",
    "ntile",
    "partition_count",
    "percent_rank",
    "rank",
    "row_number",
    "running_aggregate",
    "ParallelOptions",
    "Partition",
    "SortDirection",
    "SortKey",
    "map_partitions",
    "order_recordset",
    "partition_rows",
]
