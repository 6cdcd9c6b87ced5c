# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Microsoft SQL Server adapter using pyodbc in worker threads."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ...cursor import ProcedureResult, ResultSet
from ..parameters import DbType, Parameter, ParameterDirection
from .base import output_parameters, output_values
from .dbapi import DbApiAdapter

# Local variable types for procedure output parameters
_SQL_TYPES: dict[DbType, str] = {
    DbType.STRING: "NVARCHAR",
    DbType.INT64: "BIGINT",
    DbType.DOUBLE: "FLOAT",
    DbType.DECIMAL: "DECIMAL(38, 10)",
    DbType.BOOLEAN: "BIT",
    DbType.BINARY: "VARBINARY",
    DbType.DATETIME: "DATETIME2",
    DbType.DATE: "DATE",
    DbType.TIME: "TIME",
    DbType.GUID: "UNIQUEIDENTIFIER",
    DbType.OBJECT: "SQL_VARIANT",
}

# Largest explicit length before (MAX) is required
_MAX_LENGTH = {DbType.STRING: 4000, DbType.BINARY: 8000}


def declared_type(param: Parameter) -> str:
    """T-SQL type for a DECLARE of param, sized by Parameter.size where it applies."""
    sql_type = _SQL_TYPES[param.db_type]
    limit = _MAX_LENGTH.get(param.db_type)
    if limit is None:
        return sql_type
    if 0 < param.size <= limit:
        return f"{sql_type}({param.size})"
    return f"{sql_type}(MAX)"


class SqlServerAdapter(DbApiAdapter):
    """SQL Server adapter over an ODBC connection string.

    Example connection string::

        DRIVER={ODBC Driver 18 for SQL Server};SERVER=localhost;DATABASE=app;UID=sa;PWD=...

    Builder ``@pN`` placeholders are rewritten to positional ``?`` markers
    and values are bound in the order the markers appear.

    pyodbc has no callproc(); stored procedures run as an EXEC batch built
    by procedure_batch().
    """

    placeholder = "?"
    dialect_name = "sqlserver"

    def __init__(self, connection_string: str, timeout: int = 10):
        self.connection_string = connection_string
        self.timeout = timeout

        try:
            import pyodbc  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "SQL Server support requires pyodbc. "
                "Install with: pip install genro-dbclient[sqlserver]"
            ) from e

    def _connect(self) -> Any:
        import pyodbc

        return pyodbc.connect(self.connection_string, autocommit=False, timeout=self.timeout)

    def procedure_batch(
        self, name: str, params: Sequence[Parameter]
    ) -> tuple[str, tuple[Any, ...]]:
        """Build the EXEC batch for a procedure call and its positional values.

        Output, input-output and return-value parameters are declared as
        local variables, passed with OUTPUT, and selected back by name in
        a final result set.
        """
        declarations: list[str] = []
        arguments: list[str] = []
        values: list[Any] = []
        returned: Parameter | None = None
        for p in params:
            if p.direction is ParameterDirection.RETURN_VALUE:
                declarations.append(f"DECLARE @{p.key} INT;")
                returned = p
            elif p.direction is ParameterDirection.INPUT:
                arguments.append(f"@{p.key} = ?")
            else:
                if p.direction is ParameterDirection.INPUT_OUTPUT:
                    declarations.append(f"DECLARE @{p.key} {declared_type(p)} = ?;")
                    values.append(p.value)
                else:
                    declarations.append(f"DECLARE @{p.key} {declared_type(p)};")
                arguments.append(f"@{p.key} = @{p.key} OUTPUT")
        # EXEC arguments bind after the declarations
        values.extend(p.value for p in params if p.direction is ParameterDirection.INPUT)

        call = f"EXEC @{returned.key} = {name}" if returned else f"EXEC {name}"
        if arguments:
            call = f"{call} {', '.join(arguments)}"
        lines = [*declarations, f"{call};"]
        outputs = output_parameters(params)
        if outputs:
            selected = ", ".join(f"@{p.key} AS [{p.key}]" for p in outputs)
            lines.append(f"SELECT {selected};")
        return "\n".join(lines), tuple(values)

    def _call_sync(self, conn: Any, name: str, params: list[Parameter]) -> ProcedureResult:
        batch, values = self.procedure_batch(name, params)
        cursor = conn.cursor()
        try:
            self._run(cursor, batch, values)
            sets, affected = self._drain(cursor)
        finally:
            cursor.close()
        outputs: dict[str, Any] = {}
        if output_parameters(params):
            # The trailing SELECT of output variables is always the last set
            outputs = output_values(params, sets.pop() if sets else ResultSet())
        return ProcedureResult(sets[0] if sets else ResultSet(), outputs, affected)

    def __repr__(self) -> str:
        return "SqlServerAdapter(<odbc>)"


__all__ = ["SqlServerAdapter", "declared_type"]
