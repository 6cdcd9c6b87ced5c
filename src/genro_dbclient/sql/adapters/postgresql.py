# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""PostgreSQL async adapter using psycopg3 with connection pooling.

Uses connection-per-task model: acquire() gets from pool, release()
returns to pool. Each task gets an isolated transaction.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from ...cursor import ProcedureResult, ResultSet
from ..parameters import Parameter, ParameterDirection
from .base import DbAdapter, Params, output_values


class PostgresAdapter(DbAdapter):
    """PostgreSQL async adapter with connection pooling.

    Builder ``@pN`` placeholders are converted to ``%(pN)s``. acquire() gets
    a connection from the pool, release() returns it.

    Pool is initialized lazily on first acquire().
    """

    placeholder = "%(name)s"
    dialect_name = "postgresql"
    supports_procedures = True

    def __init__(self, dsn: str, pool_size: int = 10, connect_timeout: float = 10.0):
        self.dsn = dsn
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self._pool: Any = None

        # Verify psycopg is available at init time
        try:
            import psycopg  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "PostgreSQL support requires psycopg. "
                "Install with: pip install genro-dbclient[postgresql]"
            ) from e

    async def _ensure_pool(self) -> None:
        """Initialize connection pool if not already open."""
        if self._pool is not None:
            return

        from psycopg_pool import AsyncConnectionPool

        self._pool = AsyncConnectionPool(
            self.dsn,
            min_size=1,
            max_size=self.pool_size,
            open=False,
        )
        try:
            await asyncio.wait_for(
                self._pool.open(wait=True, timeout=self.connect_timeout),
                timeout=self.connect_timeout + 1,
            )
        except asyncio.TimeoutError:
            await self._pool.close()
            self._pool = None
            raise TimeoutError(
                f"PostgreSQL connection timed out after {self.connect_timeout}s. "
                "Check credentials and server availability."
            ) from None
        except Exception as e:
            await self._pool.close()
            self._pool = None
            raise ConnectionError(f"PostgreSQL connection failed: {e}") from e

    async def acquire(self) -> Any:
        """Acquire connection from pool."""
        await self._ensure_pool()
        return await self._pool.getconn()

    async def release(self, conn: Any) -> None:
        """Return connection to pool."""
        if self._pool:
            await self._pool.putconn(conn)

    async def shutdown(self) -> None:
        """Close connection pool (application shutdown)."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def commit(self, conn: Any) -> None:
        await conn.commit()

    async def rollback(self, conn: Any) -> None:
        await conn.rollback()

    async def execute(self, conn: Any, query: str, params: Params = None) -> int:
        """Execute statement, return affected row count."""
        query, values = self.bind(query, params)
        async with conn.cursor() as cur:
            await cur.execute(query, values)
            return cur.rowcount

    async def fetch(self, conn: Any, query: str, params: Params = None) -> ResultSet:
        """Execute query, return all rows with column names."""
        query, values = self.bind(query, params)
        async with conn.cursor() as cur:
            await cur.execute(query, values)
            if cur.description is None:
                return ResultSet()
            columns = [d.name for d in cur.description]
            rows = await cur.fetchall()
            return ResultSet(columns, [tuple(row) for row in rows])

    async def execute_script(self, conn: Any, script: str) -> None:
        """Execute multiple statements (for schema creation)."""
        async with conn.cursor() as cur:
            await cur.execute(script)

    async def call_procedure(
        self,
        conn: Any,
        name: str,
        params: Sequence[Parameter],
        returns_rows: bool = False,
    ) -> ProcedureResult:
        """CALL a procedure, or SELECT from a set-returning function.

        OUT arguments are passed as NULL; CALL returns their values as a
        single row whose columns are named after the arguments.
        RETURN_VALUE parameters are not passed and come back as None.
        """
        args = [p for p in params if p.direction is not ParameterDirection.RETURN_VALUE]
        values = {
            p.key: None if p.direction is ParameterDirection.OUTPUT else p.value for p in args
        }
        placeholders = ", ".join(self._placeholder(p.key) for p in args)
        verb = "SELECT * FROM" if returns_rows else "CALL"
        async with conn.cursor() as cur:
            await cur.execute(f"{verb} {name}({placeholders})", values or None)
            result = ResultSet()
            if cur.description is not None:
                columns = [d.name for d in cur.description]
                result = ResultSet(columns, [tuple(row) for row in await cur.fetchall()])
            rowcount = cur.rowcount
        return ProcedureResult(result, output_values(params, result), rowcount)

    def __repr__(self) -> str:
        return "PostgresAdapter(<dsn>)"


__all__ = ["PostgresAdapter"]
