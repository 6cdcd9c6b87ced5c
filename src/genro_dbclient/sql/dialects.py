# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQL dialect differences between supported backends.

Only the parts of SQL generation that actually differ live here:

- LIKE keyword and wildcard metacharacters to escape
- paging syntax and whether paging requires ORDER BY
- syntax for returning the generated identity from INSERT

Everything else (comparisons, joins, IN lists) is emitted identically.
"""

from __future__ import annotations

from ..errors import UnknownConnectionError

ESCAPE_CHAR = "~"


class Dialect:
    """Base dialect: ANSI LIKE, LIMIT/OFFSET paging, RETURNING identity."""

    name: str = "ansi"
    like_keyword: str = "LIKE"
    wildcards: str = "%_"
    requires_order_for_paging: bool = False
    unbounded_limit: str | None = None

    def escape_like(self, value: str) -> tuple[str, bool]:
        """Escape wildcard metacharacters in value.

        Returns:
            Tuple of (escaped value, whether anything was escaped). When
            escaping happens the escape character itself is escaped too.
        """
        if not any(ch in value for ch in self.wildcards):
            return value, False
        escaped = []
        for ch in value:
            if ch == ESCAPE_CHAR or ch in self.wildcards:
                escaped.append(ESCAPE_CHAR)
            escaped.append(ch)
        return "".join(escaped), True

    def paging_clause(self, skip: int | None, take: int | None) -> str:
        """Return the paging suffix for a SELECT (leading space included)."""
        sql = ""
        if take is not None:
            sql += f" LIMIT {take}"
        elif skip is not None and self.unbounded_limit:
            sql += f" LIMIT {self.unbounded_limit}"
        if skip is not None:
            sql += f" OFFSET {skip}"
        return sql

    def insert_sql(
        self,
        table: str,
        columns: list[str],
        placeholders: list[str],
        identity_column: str | None,
    ) -> str:
        """Return an INSERT statement, optionally returning the identity."""
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
        if identity_column:
            sql += f" RETURNING {identity_column}"
        return sql

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class SqlServerDialect(Dialect):
    """Microsoft SQL Server: bracket wildcards, OFFSET/FETCH, OUTPUT INSERTED."""

    name = "sqlserver"
    wildcards = "%_["
    requires_order_for_paging = True

    def paging_clause(self, skip: int | None, take: int | None) -> str:
        if skip is None and take is None:
            return ""
        # FETCH is only valid after OFFSET
        sql = f" OFFSET {skip or 0} ROWS"
        if take is not None:
            sql += f" FETCH NEXT {take} ROWS ONLY"
        return sql

    def insert_sql(self, table, columns, placeholders, identity_column):
        output = f" OUTPUT INSERTED.{identity_column}" if identity_column else ""
        return (
            f"INSERT INTO {table} ({', '.join(columns)}){output} "
            f"VALUES ({', '.join(placeholders)})"
        )


class PostgresDialect(Dialect):
    """PostgreSQL: case-insensitive ILIKE, RETURNING identity."""

    name = "postgresql"
    like_keyword = "ILIKE"


class MySqlDialect(Dialect):
    """MySQL: LIMIT/OFFSET, identity via LAST_INSERT_ID()."""

    name = "mysql"
    unbounded_limit = "18446744073709551615"

    def insert_sql(self, table, columns, placeholders, identity_column):
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
        if identity_column:
            sql += "; SELECT LAST_INSERT_ID()"
        return sql


class SqliteDialect(Dialect):
    """SQLite: LIMIT -1 for open-ended OFFSET, RETURNING identity."""

    name = "sqlite"
    unbounded_limit = "-1"


DIALECTS: dict[str, type[Dialect]] = {
    "mssql": SqlServerDialect,
    "sqlserver": SqlServerDialect,
    "postgresql": PostgresDialect,
    "postgres": PostgresDialect,
    "mysql": MySqlDialect,
    "sqlite": SqliteDialect,
}


def get_dialect(name: str | Dialect) -> Dialect:
    """Return a dialect instance by database type name (case-insensitive).

    Accepts "MsSql", "SqlServer", "PostgreSQL", "Postgres", "MySql", "Sqlite"
    or an existing Dialect instance.

    Raises:
        UnknownConnectionError: If the database type is not supported.
    """
    if isinstance(name, Dialect):
        return name
    try:
        return DIALECTS[name.strip().lower()]()
    except KeyError:
        raise UnknownConnectionError(
            f"Unknown database type: '{name}'. Supported: MsSql, PostgreSQL, MySql, Sqlite"
        ) from None


__all__ = [
    "DIALECTS",
    "Dialect",
    "ESCAPE_CHAR",
    "MySqlDialect",
    "PostgresDialect",
    "SqlServerDialect",
    "SqliteDialect",
    "get_dialect",
]
