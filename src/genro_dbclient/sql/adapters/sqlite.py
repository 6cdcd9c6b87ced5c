# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite with per-task connections."""

from __future__ import annotations

import datetime
import decimal
import uuid
from typing import Any

import aiosqlite

from ...cursor import ResultSet
from .base import DbAdapter, Params


class SqliteAdapter(DbAdapter):
    """SQLite async adapter with per-task connections.

    Uses :name placeholders natively. Each acquire() opens a new connection,
    release() closes it. Values come back as stored; the row mapper adapts
    0/1 and ISO text to bool and datetime members.
    """

    placeholder = ":name"
    dialect_name = "sqlite"

    def __init__(self, db_path: str):
        self.db_path = db_path or ":memory:"

    def bind(self, query: str, params: Params = None) -> tuple[str, Any]:
        """Translate placeholders and convert values sqlite3 cannot bind."""
        query, values = super().bind(query, params)
        return query, {k: _to_sqlite(v) for k, v in values.items()}

    async def acquire(self) -> aiosqlite.Connection:
        """Open new connection for the task."""
        return await aiosqlite.connect(self.db_path)

    async def release(self, conn: aiosqlite.Connection) -> None:
        """Close connection."""
        await conn.close()

    async def shutdown(self) -> None:
        """No-op for SQLite (no pool to close)."""
        pass

    async def commit(self, conn: aiosqlite.Connection) -> None:
        await conn.commit()

    async def rollback(self, conn: aiosqlite.Connection) -> None:
        await conn.rollback()

    async def execute(self, conn: aiosqlite.Connection, query: str, params: Params = None) -> int:
        """Execute statement, return affected row count."""
        query, values = self.bind(query, params)
        cursor = await conn.execute(query, values)
        return cursor.rowcount

    async def fetch(self, conn: aiosqlite.Connection, query: str, params: Params = None) -> ResultSet:
        """Execute query, return all rows with column names."""
        query, values = self.bind(query, params)
        async with conn.execute(query, values) as cursor:
            rows = await cursor.fetchall()
            columns = [c[0] for c in cursor.description or ()]
            return ResultSet(columns, [tuple(row) for row in rows])

    async def execute_script(self, conn: aiosqlite.Connection, script: str) -> None:
        """Execute multiple statements (for schema creation)."""
        await conn.executescript(script)

    def __repr__(self) -> str:
        return f"SqliteAdapter({self.db_path!r})"


def _to_sqlite(value: Any) -> Any:
    # Decimal and UUID as text, temporal values as ISO strings
    if isinstance(value, (decimal.Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return value


__all__ = ["SqliteAdapter"]
