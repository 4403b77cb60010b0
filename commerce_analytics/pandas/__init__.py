"""Pandas DataFrame adapters for commerce analytics recordsets."""

from .adapters import (
    dataframe_to_recordset,
    recordset_to_dataframe,
    snapshot_from_dataframes,
)

__all__ = [
    "dataframe_to_recordset",
    "recordset_to_dataframe",
    "snapshot_from_dataframes",
]
