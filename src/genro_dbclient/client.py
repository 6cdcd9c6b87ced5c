# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Async database client: statement execution, mapping and query builders.

DbClient ties an adapter (driver), a MappingRegistry (naming contract,
mappers, accessors) and a RowMapper together. It is the statement
execution collaborator used by QueryBuilder's async helpers.

Connection model:
    - connection(): context manager pinning one connection to the current
      task; COMMIT on success, ROLLBACK on exception
    - outside connection(), each call borrows its own connection and
      commits when the call succeeds
    - shutdown(): closes the adapter pool (application shutdown only)

Stored procedures (execute_stored_procedure*) run through the adapter's
call_procedure() hook; SQLite has none and raises UnsupportedOperationError.

Usage:
    registry = MappingRegistry()
    registry.entity(Product, table="products", columns={"name": "product_name"})

    client = DbClient(DbClientConfig("PostgreSQL", "postgresql://..."), registry)

    products = await client.query(Product).where(lambda p: p.price > 10).to_list()

    async with client.connection():
        new_id = await client.insert(Product(name="Widget", price=Decimal("9.90")))
        await client.execute_command(
            "UPDATE products SET price = @p0 WHERE id = @p1",
            [client.get_parameter("p0", Decimal("8.50")), client.get_parameter("p1", new_id)],
        )

    await client.shutdown()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TypeVar

from .config import DbClientConfig, config_from_env
from .errors import UnsupportedOperationError
from .mapper import RowMapper
from .sql.adapters import DbAdapter, get_adapter
from .sql.identifiers import validate_parameter_name, validate_routine_name
from .sql.parameters import ParameterDirection
from .sql.query import QueryBuilder
from .sql.registry import MappingRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .cursor import ProcedureResult, ResultSet
    from .sql.adapters.base import Params
    from .sql.parameters import DbType, Parameter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DbClient:
    """Async database client with per-task connection isolation.

    Args:
        config: Client configuration (default: in-memory SQLite).
        registry: Shared MappingRegistry (a private one is created if omitted).
        adapter: Pre-built adapter; created from config when omitted.
    """

    def __init__(
        self,
        config: DbClientConfig | None = None,
        registry: MappingRegistry | None = None,
        adapter: DbAdapter | None = None,
    ):
        self.config = config or DbClientConfig()
        self.registry = registry or MappingRegistry()
        self.adapter: DbAdapter = adapter or get_adapter(
            self.config.connection_string, self.config.database_type
        )
        self.dialect = self.adapter.dialect
        self.mapper = RowMapper(self.registry, self.config.pluralize_table_names)
        # One context variable per client so clients never share connections
        self._current_conn: ContextVar[Any] = ContextVar(
            f"dbclient_conn_{id(self)}", default=None
        )

    @classmethod
    def from_env(cls, registry: MappingRegistry | None = None) -> DbClient:
        """Create a client configured from GENRO_DBCLIENT_* variables."""
        return cls(config_from_env(), registry)

    @property
    def conn(self) -> Any:
        """Get current connection from context.

        Raises:
            RuntimeError: If no connection is active (not inside connection() context).
        """
        c = self._current_conn.get()
        if c is None:
            raise RuntimeError("No active connection. Use 'async with client.connection():'")
        return c

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[DbClient]:
        """Context manager for a task-bound connection with transaction.

        Usage:
            async with client.connection():
                await client.execute_command("INSERT ...", params)
                await client.execute_command("UPDATE ...", params)
            # COMMIT automatic, ROLLBACK if the block raises
        """
        conn = await self.adapter.acquire()
        token = self._current_conn.set(conn)
        try:
            yield self
            await self.adapter.commit(conn)
        except Exception:
            await self.adapter.rollback(conn)
            raise
        finally:
            self._current_conn.reset(token)
            await self.adapter.release(conn)

    @asynccontextmanager
    async def _borrow(self) -> AsyncIterator[Any]:
        """Yield the task's connection, or a short-lived one committed on exit."""
        current = self._current_conn.get()
        if current is not None:
            yield current
            return
        async with self.connection():
            yield self._current_conn.get()

    async def shutdown(self) -> None:
        """Close connection pool (application shutdown)."""
        await self.adapter.shutdown()

    # -------------------------------------------------------------------------
    # Builders and parameters
    # -------------------------------------------------------------------------

    def query(self, entity: type[T]) -> QueryBuilder[T]:
        """Return a QueryBuilder bound to this client's dialect and registry."""
        return QueryBuilder(
            entity,
            self.dialect,
            self.registry,
            pluralize=self.config.pluralize_table_names,
            parameter_factory=self.adapter.get_parameter,
            executor=self,
        )

    def get_parameter(
        self,
        name: str,
        value: Any,
        db_type: DbType | None = None,
        direction: ParameterDirection = ParameterDirection.INPUT,
        size: int = 0,
    ) -> Parameter:
        """Create a statement parameter (``name`` with or without ``@``)."""
        return self.adapter.get_parameter(name, value, db_type, direction, size)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute_query(self, cls: type[T], sql: str, params: Params = None) -> list[T]:
        """Run a query and map every row to cls."""
        result = await self._fetch(sql, params)
        return self.mapper.map_all(cls, result.cursors())

    async def execute_query_first_row(
        self, cls: type[T], sql: str, params: Params = None
    ) -> T | None:
        """Run a query and map the first row to cls, or return None."""
        row = (await self._fetch(sql, params)).first()
        return None if row is None else self.mapper.map(cls, row)

    async def execute_query_dynamic(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        """Run a query returning one dict per row (column name -> value)."""
        result = await self._fetch(sql, params)
        return [self.mapper.map_dynamic(cursor) for cursor in result.cursors()]

    async def execute_query_first_row_dynamic(
        self, sql: str, params: Params = None
    ) -> dict[str, Any] | None:
        row = (await self._fetch(sql, params)).first()
        return None if row is None else self.mapper.map_dynamic(row)

    async def execute_scalar(self, sql: str, params: Params = None) -> Any:
        """Run a query and return the first column of the first row."""
        return (await self._fetch(sql, params)).scalar()

    async def execute_command(self, sql: str, params: Params = None) -> int:
        """Run a statement and return the affected row count."""
        self._log_sql(sql)
        started = time.perf_counter()
        async with self._borrow() as conn:
            count = await self.adapter.execute(conn, sql, params)
        self._log_timing(started, count)
        return count

    async def execute_script(self, script: str) -> None:
        """Run a multi-statement script (schema setup)."""
        self._log_sql(script)
        async with self._borrow() as conn:
            await self.adapter.execute_script(conn, script)

    # -------------------------------------------------------------------------
    # Stored procedures
    # -------------------------------------------------------------------------

    async def execute_stored_procedure(self, name: str, params: Params = None) -> int:
        """Call a stored procedure and return the affected row count (-1 if unknown)."""
        return (await self._call(name, params)).rowcount

    async def execute_stored_procedure_select_data(
        self, cls: type[T], name: str, params: Params = None
    ) -> list[T]:
        """Call a row-returning procedure and map its first result set to cls.

        On PostgreSQL the routine is a set-returning function queried with
        SELECT * FROM name(...).
        """
        outcome = await self._call(name, params, returns_rows=True)
        return self.mapper.map_all(cls, outcome.result.cursors())

    async def execute_stored_procedure_with_output(
        self, name: str, params: Params = None
    ) -> dict[str, Any]:
        """Call a stored procedure and return its output parameters.

        Usage:
            outputs = await client.execute_stored_procedure_with_output(
                "add_data",
                [
                    client.get_parameter("p_name", "Jaded"),
                    client.get_parameter(
                        "p_status", None, DbType.STRING, ParameterDirection.OUTPUT, 250
                    ),
                ],
            )
            outputs["p_status"]

        Returns:
            OUTPUT, INPUT_OUTPUT and RETURN_VALUE parameters keyed by name
            without the leading ``@``.
        """
        return (await self._call(name, params)).outputs

    async def _call(
        self, name: str, params: Params, returns_rows: bool = False
    ) -> ProcedureResult:
        validate_routine_name(name)
        if not self.adapter.supports_procedures:
            raise UnsupportedOperationError(
                f"{type(self.adapter).__name__} does not support stored procedures"
            )
        parameters = self._procedure_parameters(params)
        if self.config.log_executed_query:
            logger.info("Calling procedure: %s", name)
        started = time.perf_counter()
        async with self._borrow() as conn:
            outcome = await self.adapter.call_procedure(conn, name, parameters, returns_rows)
        self._log_timing(started, len(outcome.result))
        return outcome

    def _procedure_parameters(self, params: Params) -> list[Parameter]:
        """Normalize to Parameter objects with validated names; mappings bind inputs."""
        if params is None:
            return []
        if isinstance(params, Mapping):
            params = [self.get_parameter(str(k), v) for k, v in params.items()]
        for p in params:
            validate_parameter_name(p.name)
        return list(params)

    async def insert(self, entity: Any, return_identity: bool = True) -> Any:
        """Insert entity via build_insert(); return the new identity or row count."""
        sql, params = self.query(type(entity)).build_insert(entity, return_identity)
        if return_identity:
            return await self.execute_scalar(sql, params)
        return await self.execute_command(sql, params)

    async def _fetch(self, sql: str, params: Params) -> ResultSet:
        self._log_sql(sql)
        started = time.perf_counter()
        async with self._borrow() as conn:
            result = await self.adapter.fetch(conn, sql, params)
        self._log_timing(started, len(result))
        return result

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    def _log_sql(self, sql: str) -> None:
        if self.config.log_executed_query:
            logger.info("Executing SQL: %s", sql)

    def _log_timing(self, started: float, rows: int) -> None:
        if self.config.enable_logging:
            elapsed = (time.perf_counter() - started) * 1000
            logger.debug("Statement completed in %.2f ms (%d rows)", elapsed, rows)


__all__ = ["DbClient"]
