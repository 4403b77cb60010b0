"""Immutable, named row collections shared by every analytics component."""

from __future__ import annotations

import dataclasses
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence


class Recordset:
    """Typed, read-only table of rows.

    Every row is a read-only mapping holding exactly the recordset's columns,
    in column order. Operations never mutate; they return new recordsets.

    Parameters
    ----------
    name:
        Table name (e.g. ``"orders"`` or ``"rfm_segments"``).
    columns:
        Column names, in output order.
    rows:
        Row mappings. Each must provide every column and nothing else.

    Examples
    --------
    >>> rs = Recordset("orders", ["order_id", "total"], [{"order_id": "O1", "total": 5}])
    >>> len(rs)
    1
    >>> rs.column("total")
    [5]
    """

    __slots__ = ("_name", "_columns", "_rows")

    def __init__(
        self,
        name: str,
        columns: Sequence[str],
        rows: Iterable[Mapping[str, Any]] = (),
    ) -> None:
        columns = tuple(columns)
        if len(set(columns)) != len(columns):
            raise ValueError(f"Duplicate column names in recordset '{name}': {columns}")

        expected = set(columns)
        frozen_rows = []
        for idx, row in enumerate(rows):
            keys = set(row.keys())
            if keys != expected:
                missing = sorted(expected - keys)
                extra = sorted(keys - expected)
                raise ValueError(
                    f"Row {idx} of recordset '{name}' does not match columns: "
                    f"missing {missing}, unexpected {extra}"
                )
            frozen_rows.append(MappingProxyType({col: row[col] for col in columns}))

        self._name = name
        self._columns = columns
        self._rows = tuple(frozen_rows)

    @classmethod
    def from_records(
        cls,
        name: str,
        records: Iterable[Any],
        columns: Sequence[str] | None = None,
    ) -> Recordset:
        """Build a recordset from dataclass instances (e.g. ``Order`` entities)."""
        rows = [dataclasses.asdict(record) for record in records]
        if columns is None:
            if rows:
                columns = list(rows[0].keys())
            else:
                columns = []
        return cls(name, columns, rows)

    @property
    def name(self) -> str:
        return self._name

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def rows(self) -> tuple[Mapping[str, Any], ...]:
        return self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self._rows)

    def __getitem__(self, index: int) -> Mapping[str, Any]:
        return self._rows[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Recordset):
            return NotImplemented
        return (
            self._columns == other._columns
            and [dict(r) for r in self._rows] == [dict(r) for r in other._rows]
        )

    def __repr__(self) -> str:
        return f"Recordset(name={self._name!r}, columns={self._columns!r}, rows={len(self)})"

    def require_columns(self, *names: str) -> None:
        """Raise ValueError if any of ``names`` is not a column."""
        missing = [n for n in names if n not in self._columns]
        if missing:
            raise ValueError(
                f"Recordset '{self._name}' is missing required columns {missing}; "
                f"available: {list(self._columns)}"
            )

    def column(self, name: str) -> list[Any]:
        self.require_columns(name)
        return [row[name] for row in self._rows]

    def select(self, *names: str) -> Recordset:
        self.require_columns(*names)
        return Recordset(
            self._name, names, ({n: row[n] for n in names} for row in self._rows)
        )

    def filter(self, predicate: Callable[[Mapping[str, Any]], bool]) -> Recordset:
        return Recordset(self._name, self._columns, (r for r in self._rows if predicate(r)))

    def rename(self, name: str) -> Recordset:
        return Recordset(name, self._columns, self._rows)

    def index_by(self, column: str) -> dict[Any, Mapping[str, Any]]:
        """Map ``column`` value to row. Later duplicates overwrite earlier ones."""
        self.require_columns(column)
        return {row[column]: row for row in self._rows}

    def to_dicts(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self._rows]
