# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Statement parameters and the positional placeholder collector."""

from __future__ import annotations

import datetime
import decimal
import enum
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

PLACEHOLDER_PREFIX = "@p"


class DbType(enum.Enum):
    """Declared parameter type passed to the driver parameter factory."""

    STRING = "string"
    INT64 = "int64"
    DOUBLE = "double"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    BINARY = "binary"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    GUID = "guid"
    OBJECT = "object"


class ParameterDirection(enum.Enum):
    INPUT = "input"
    OUTPUT = "output"
    INPUT_OUTPUT = "input_output"
    RETURN_VALUE = "return_value"


@dataclass(frozen=True)
class Parameter:
    """A bound statement parameter.

    Attributes:
        name: Placeholder name as it appears in the SQL text (``@p0``).
        value: Python value to bind. None binds SQL NULL.
        db_type: Declared type, inferred from the value when not given.
        direction: INPUT for statements; OUTPUT, INPUT_OUTPUT and
            RETURN_VALUE are read back by stored procedure calls.
        size: Declared size for variable-length types (sizes SQL Server
            procedure output variables), 0 when unset.
    """

    name: str
    value: Any
    db_type: DbType = DbType.OBJECT
    direction: ParameterDirection = ParameterDirection.INPUT
    size: int = 0

    @property
    def key(self) -> str:
        """Name without the leading ``@``, as used by named-parameter drivers."""
        return self.name.lstrip("@")


ParameterFactory = Callable[..., Parameter]

# Order matters: bool before int, datetime before date
_DB_TYPES: tuple[tuple[type, DbType], ...] = (
    (bool, DbType.BOOLEAN),
    (int, DbType.INT64),
    (float, DbType.DOUBLE),
    (decimal.Decimal, DbType.DECIMAL),
    (str, DbType.STRING),
    (bytes, DbType.BINARY),
    (bytearray, DbType.BINARY),
    (datetime.datetime, DbType.DATETIME),
    (datetime.date, DbType.DATE),
    (datetime.time, DbType.TIME),
    (uuid.UUID, DbType.GUID),
)


def infer_db_type(value: Any) -> DbType:
    """Infer the DbType of a Python value (OBJECT for None or unknown types)."""
    for tp, db_type in _DB_TYPES:
        if isinstance(value, tp):
            return db_type
    return DbType.OBJECT


class ParamCollector:
    """Allocate ``@pN`` placeholders in the order values are produced.

    One collector is shared by every fragment of a statement so that
    numbering is contiguous and matches the parameter list order exactly.
    """

    def __init__(self, factory: ParameterFactory | None = None):
        self._factory = factory or Parameter
        self.parameters: list[Parameter] = []

    def add(self, value: Any) -> str:
        """Bind value to the next placeholder and return the placeholder."""
        name = f"{PLACEHOLDER_PREFIX}{len(self.parameters)}"
        self.parameters.append(self._factory(name, value, infer_db_type(value)))
        return name

    def __len__(self) -> int:
        return len(self.parameters)


__all__ = [
    "DbType",
    "PLACEHOLDER_PREFIX",
    "ParamCollector",
    "Parameter",
    "ParameterDirection",
    "ParameterFactory",
    "infer_db_type",
]
