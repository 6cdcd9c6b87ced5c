# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Row cursor abstraction consumed by the row mapper.

A cursor exposes one row positionally: field count, field names, null
checks and typed value accessors by ordinal. Adapters return a ResultSet
(column names plus value tuples); each row is read through a
TupleRowCursor. MappingRowCursor wraps a plain dict row.
"""

from __future__ import annotations

import datetime
import decimal
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RowCursor(Protocol):
    """Positional read access to the current row."""

    @property
    def field_count(self) -> int: ...

    def get_name(self, ordinal: int) -> str: ...

    def get_ordinal(self, name: str) -> int: ...

    def is_null(self, ordinal: int) -> bool: ...

    def get_value(self, ordinal: int) -> Any: ...

    def get_int(self, ordinal: int) -> int: ...

    def get_float(self, ordinal: int) -> float: ...

    def get_decimal(self, ordinal: int) -> decimal.Decimal: ...

    def get_bool(self, ordinal: int) -> bool: ...

    def get_str(self, ordinal: int) -> str: ...

    def get_datetime(self, ordinal: int) -> datetime.datetime: ...


class BaseRowCursor:
    """Typed accessors and name lookup on top of get_value()/get_name()."""

    _names: Sequence[str]
    _values: Sequence[Any]

    @property
    def field_count(self) -> int:
        return len(self._names)

    def get_name(self, ordinal: int) -> str:
        return self._names[ordinal]

    def get_ordinal(self, name: str) -> int:
        """Ordinal of the first column named name (case-insensitive).

        Raises:
            IndexError: If the row has no such column.
        """
        lowered = name.lower()
        for i, column in enumerate(self._names):
            if column.lower() == lowered:
                return i
        raise IndexError(f"Column '{name}' not found in row")

    def is_null(self, ordinal: int) -> bool:
        return self._values[ordinal] is None

    def get_value(self, ordinal: int) -> Any:
        return self._values[ordinal]

    def get_int(self, ordinal: int) -> int:
        return int(self._values[ordinal])

    def get_float(self, ordinal: int) -> float:
        return float(self._values[ordinal])

    def get_decimal(self, ordinal: int) -> decimal.Decimal:
        value = self._values[ordinal]
        if isinstance(value, decimal.Decimal):
            return value
        return decimal.Decimal(str(value))

    def get_bool(self, ordinal: int) -> bool:
        return bool(self._values[ordinal])

    def get_str(self, ordinal: int) -> str:
        value = self._values[ordinal]
        return value if isinstance(value, str) else str(value)

    def get_datetime(self, ordinal: int) -> datetime.datetime:
        value = self._values[ordinal]
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time())
        return datetime.datetime.fromisoformat(str(value))

    def __repr__(self) -> str:
        pairs = ", ".join(f"{n}={v!r}" for n, v in zip(self._names, self._values))
        return f"<{type(self).__name__} {pairs}>"


class TupleRowCursor(BaseRowCursor):
    """Cursor over a value tuple with a separate column-name sequence."""

    def __init__(self, names: Sequence[str], values: Sequence[Any]):
        if len(names) != len(values):
            raise ValueError(f"Row has {len(values)} values for {len(names)} columns")
        self._names = names
        self._values = values


class MappingRowCursor(BaseRowCursor):
    """Cursor over a dict row (column name -> value)."""

    def __init__(self, row: Mapping[str, Any]):
        self._names = tuple(row.keys())
        self._values = tuple(row.values())


@dataclass
class ResultSet:
    """Rows returned by an adapter query.

    Attributes:
        columns: Column names in select-list order (duplicates preserved).
        rows: One tuple of values per row.
    """

    columns: list[str] = field(default_factory=list)
    rows: list[tuple[Any, ...]] = field(default_factory=list)

    def cursors(self) -> Iterator[TupleRowCursor]:
        names = tuple(self.columns)
        for row in self.rows:
            yield TupleRowCursor(names, row)

    def first(self) -> TupleRowCursor | None:
        if not self.rows:
            return None
        return TupleRowCursor(tuple(self.columns), self.rows[0])

    def scalar(self) -> Any:
        """First column of the first row, or None."""
        if not self.rows or not self.rows[0]:
            return None
        return self.rows[0][0]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class ProcedureResult:
    """Outcome of a stored procedure call.

    Attributes:
        result: First result set the procedure returned (empty if none).
        outputs: Output, input-output and return-value parameters by name.
        rowcount: Rows affected, summed over the statements that report it.
    """

    result: ResultSet = field(default_factory=ResultSet)
    outputs: dict[str, Any] = field(default_factory=dict)
    rowcount: int = -1


__all__ = [
    "BaseRowCursor",
    "MappingRowCursor",
    "ProcedureResult",
    "ResultSet",
    "RowCursor",
    "TupleRowCursor",
]
