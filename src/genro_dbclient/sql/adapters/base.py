# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base adapter class for async database backends."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from ...cursor import ProcedureResult
from ...errors import UnsupportedOperationError
from ..dialects import Dialect, get_dialect
from ..parameters import Parameter, ParameterDirection, infer_db_type

if TYPE_CHECKING:
    from ...cursor import ResultSet
    from ..parameters import DbType

# Builder placeholders (@p0, @p1, ...). Quoted literals and identifiers are
# matched first so placeholders inside them are left as written.
PLACEHOLDER_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|@(p\d+)\b")

Params = Sequence[Parameter] | Mapping[str, Any] | None


class DbAdapter(ABC):
    """Abstract base class for async database adapters.

    Provides a unified interface over the supported drivers with:
    - Connection management (acquire, release, shutdown)
    - Transaction control (commit, rollback on connection)
    - Statement execution (execute, fetch)
    - Stored procedure calls with output parameters (call_procedure)
    - Placeholder translation from builder ``@pN`` to the driver style

    Connection model:
    - acquire(): Returns a new connection (from pool or new file handle)
    - release(conn): Returns connection to pool or closes it
    - shutdown(): Closes connection pool (application shutdown only)

    DbClient manages connection lifecycle via contextvars for per-task isolation.

    Subclasses set ``placeholder`` to the driver's named style (``:name``,
    ``%(name)s``) or ``?`` for positional binding, and ``dialect_name``.
    """

    placeholder: str = ":name"  # Override in subclass
    dialect_name: str = "sqlite"
    supports_procedures: bool = False

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.dialect_name)

    def get_parameter(
        self,
        name: str,
        value: Any,
        db_type: DbType | None = None,
        direction: ParameterDirection = ParameterDirection.INPUT,
        size: int = 0,
    ) -> Parameter:
        """Parameter factory; names are normalized to the ``@name`` form."""
        if not name.startswith("@"):
            name = f"@{name}"
        return Parameter(name, value, db_type or infer_db_type(value), direction, size)

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    @abstractmethod
    async def acquire(self) -> Any:
        """Acquire a new connection.

        For pooled adapters: gets connection from pool.
        For file-based adapters: opens new connection.

        Returns:
            Database connection object.
        """
        ...

    @abstractmethod
    async def release(self, conn: Any) -> None:
        """Release a connection (return to pool or close)."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Close connection pool (application shutdown)."""
        ...

    @abstractmethod
    async def commit(self, conn: Any) -> None:
        """Commit transaction on connection."""
        ...

    @abstractmethod
    async def rollback(self, conn: Any) -> None:
        """Rollback transaction on connection."""
        ...

    # -------------------------------------------------------------------------
    # Connection-bound operations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def execute(self, conn: Any, query: str, params: Params = None) -> int:
        """Execute statement on connection, return affected row count."""
        ...

    @abstractmethod
    async def fetch(self, conn: Any, query: str, params: Params = None) -> ResultSet:
        """Execute query on connection, return all rows with column names."""
        ...

    @abstractmethod
    async def execute_script(self, conn: Any, script: str) -> None:
        """Execute multiple statements on connection (for schema creation)."""
        ...

    async def call_procedure(
        self,
        conn: Any,
        name: str,
        params: Sequence[Parameter],
        returns_rows: bool = False,
    ) -> ProcedureResult:
        """Call a stored procedure on connection.

        Args:
            conn: Connection from acquire().
            name: Validated procedure name.
            params: Parameters in procedure argument order. OUTPUT,
                INPUT_OUTPUT and RETURN_VALUE parameters come back in
                ProcedureResult.outputs under their bare name.
            returns_rows: The routine produces a result set (a set-returning
                function on PostgreSQL).

        Raises:
            UnsupportedOperationError: The backend has no stored procedures.
        """
        raise UnsupportedOperationError(
            f"{type(self).__name__} does not support stored procedures"
        )

    # -------------------------------------------------------------------------
    # SQL Helpers
    # -------------------------------------------------------------------------

    def bind(self, query: str, params: Params = None) -> tuple[str, Any]:
        """Translate builder placeholders and parameters to driver form.

        Returns:
            (query, driver_params): a dict for named placeholder styles, a
            tuple in occurrence order for positional ``?`` binding.
        """
        values = _parameter_values(params)
        if self.placeholder == "?":
            ordered: list[Any] = []

            def positional(match: re.Match[str]) -> str:
                if match.group(1) is None:
                    return match.group(0)
                ordered.append(values[match.group(1)])
                return "?"

            return PLACEHOLDER_RE.sub(positional, query), tuple(ordered)

        if "%" in self.placeholder:
            if not values:
                # No parameters: the driver skips % processing
                return query, None
            # pyformat drivers treat a bare % as a format directive
            query = query.replace("%", "%%")

        def named(match: re.Match[str]) -> str:
            if match.group(1) is None:
                return match.group(0)
            return self._placeholder(match.group(1))

        return PLACEHOLDER_RE.sub(named, query), values

    def _placeholder(self, name: str) -> str:
        """Return placeholder for named parameter."""
        return self.placeholder.replace("name", name)


def output_parameters(params: Sequence[Parameter]) -> list[Parameter]:
    """Parameters whose value is read back after a procedure call."""
    return [p for p in params if p.direction is not ParameterDirection.INPUT]


def output_values(params: Sequence[Parameter], result: ResultSet) -> dict[str, Any]:
    """Read output parameters from the first row of result by name (case-insensitive).

    Parameters with no matching column come back as None.
    """
    row = result.first()
    found: dict[str, Any] = {}
    if row is not None:
        for i in range(row.field_count):
            found.setdefault(row.get_name(i).lower(), row.get_value(i))
    return {p.key: found.get(p.key.lower()) for p in output_parameters(params)}


def _parameter_values(params: Params) -> dict[str, Any]:
    if params is None:
        return {}
    if isinstance(params, Mapping):
        return {str(k).lstrip("@"): v for k, v in params.items()}
    return {p.key: p.value for p in params}


__all__ = ["DbAdapter", "PLACEHOLDER_RE", "Params", "output_parameters", "output_values"]
