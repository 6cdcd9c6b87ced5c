# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Async wrapper for blocking DB-API 2.0 drivers.

Drivers without an asyncio API (PyMySQL, pyodbc) run every call in a
worker thread via asyncio.to_thread. One connection is only ever used by
the task that acquired it, so calls on it never overlap.
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections.abc import Sequence
from typing import Any

from ...cursor import ProcedureResult, ResultSet
from ..parameters import Parameter, ParameterDirection
from .base import DbAdapter, Params


class DbApiAdapter(DbAdapter):
    """DbAdapter over a synchronous DB-API connection.

    Subclasses implement _connect(). Connections are opened on acquire()
    and closed on release(); pooling is left to the driver.

    Stored procedures go through the DB-API ``callproc()`` extension;
    drivers that lack it or report outputs differently override
    _call_sync() or _procedure_outputs().
    """

    supports_procedures = True

    @abstractmethod
    def _connect(self) -> Any:
        """Open a new driver connection (runs in a worker thread)."""
        ...

    async def acquire(self) -> Any:
        return await asyncio.to_thread(self._connect)

    async def release(self, conn: Any) -> None:
        await asyncio.to_thread(conn.close)

    async def shutdown(self) -> None:
        """No-op (no pool to close)."""
        pass

    async def commit(self, conn: Any) -> None:
        await asyncio.to_thread(conn.commit)

    async def rollback(self, conn: Any) -> None:
        await asyncio.to_thread(conn.rollback)

    async def execute(self, conn: Any, query: str, params: Params = None) -> int:
        """Execute statement, return affected row count."""
        query, values = self.bind(query, params)
        return await asyncio.to_thread(self._execute_sync, conn, query, values)

    async def fetch(self, conn: Any, query: str, params: Params = None) -> ResultSet:
        """Execute query, return the last result set that has columns."""
        query, values = self.bind(query, params)
        return await asyncio.to_thread(self._fetch_sync, conn, query, values)

    async def execute_script(self, conn: Any, script: str) -> None:
        """Execute ;-separated statements one by one."""
        for statement in (s.strip() for s in script.split(";")):
            if statement:
                await asyncio.to_thread(self._execute_sync, conn, statement, None)

    async def call_procedure(
        self,
        conn: Any,
        name: str,
        params: Sequence[Parameter],
        returns_rows: bool = False,
    ) -> ProcedureResult:
        """Call a stored procedure in a worker thread."""
        return await asyncio.to_thread(self._call_sync, conn, name, list(params))

    # -------------------------------------------------------------------------
    # Blocking helpers (worker thread)
    # -------------------------------------------------------------------------

    def _run(self, cursor: Any, query: str, values: Any) -> None:
        if values:
            cursor.execute(query, values)
        else:
            cursor.execute(query)

    def _drain(self, cursor: Any) -> tuple[list[ResultSet], int]:
        """Read every pending result: sets with columns, and the summed row count."""
        sets: list[ResultSet] = []
        affected = -1
        while True:
            if cursor.description:
                sets.append(
                    ResultSet(
                        [d[0] for d in cursor.description],
                        [tuple(row) for row in cursor.fetchall()],
                    )
                )
            elif cursor.rowcount is not None and cursor.rowcount >= 0:
                affected = max(affected, 0) + cursor.rowcount
            if not cursor.nextset():
                break
        return sets, affected

    def _execute_sync(self, conn: Any, query: str, values: Any) -> int:
        cursor = conn.cursor()
        try:
            self._run(cursor, query, values)
            return cursor.rowcount
        finally:
            cursor.close()

    def _fetch_sync(self, conn: Any, query: str, values: Any) -> ResultSet:
        cursor = conn.cursor()
        try:
            self._run(cursor, query, values)
            # Multi-statement batches (INSERT ...; SELECT LAST_INSERT_ID())
            sets, _ = self._drain(cursor)
            return sets[-1] if sets else ResultSet()
        finally:
            cursor.close()

    def _call_sync(self, conn: Any, name: str, params: list[Parameter]) -> ProcedureResult:
        args = [p for p in params if p.direction is not ParameterDirection.RETURN_VALUE]
        cursor = conn.cursor()
        try:
            returned = cursor.callproc(
                name,
                [None if p.direction is ParameterDirection.OUTPUT else p.value for p in args],
            )
            sets, affected = self._drain(cursor)
            outputs = self._procedure_outputs(cursor, name, args, returned)
        finally:
            cursor.close()
        for p in params:
            if p.direction is ParameterDirection.RETURN_VALUE:
                outputs.setdefault(p.key, None)
        return ProcedureResult(sets[0] if sets else ResultSet(), outputs, affected)

    def _procedure_outputs(
        self, cursor: Any, name: str, args: list[Parameter], returned: Any
    ) -> dict[str, Any]:
        """Output values from the modified argument copy callproc() returns."""
        values = list(returned or ())
        return {
            p.key: values[i] if i < len(values) else None
            for i, p in enumerate(args)
            if p.direction is not ParameterDirection.INPUT
        }


__all__ = ["DbApiAdapter"]
