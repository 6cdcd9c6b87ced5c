# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Fluent query builder producing parameterized SQL for one entity type.

QueryBuilder accumulates WHERE, projection, join, ordering and paging
state, then compiles it on demand. Builders are mutable single-owner
objects: every fluent call updates and returns the same instance.

Terminal build_* methods return ``(sql, parameters)`` and never touch the
database. Each build allocates a fresh parameter collector, so building
twice from the same state yields identical output.

Example:
    query = (
        QueryBuilder(Product, "postgresql", registry)
        .join(Category, lambda p, c: p.category_id == c.id)
        .where(lambda p: (p.price > 10) & p.name.contains("widget"))
        .order_by(lambda p: p.name)
        .skip(20)
        .take(10)
    )
    sql, params = query.build_select()

Qualification rules:
    - no joins: columns are emitted bare
    - with joins: default SELECT list, WHERE and ORDER BY members are
      qualified with their table
    - JOIN ON conditions are always qualified
    - raw string columns passed to select() are never touched
"""

from __future__ import annotations

import enum
import logging
import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from ..errors import MissingPredicateError, UnorderedPagingError, UnsupportedExpressionError
from .compiler import (
    PredicateCompiler,
    ProjectedColumn,
    projection_columns,
    render_projection,
)
from .dialects import Dialect, get_dialect
from .expressions import JOINED, MAIN, OWN, EntityRef, Logical, Member, Node, Operand
from .identifiers import validate_identifier
from .parameters import ParamCollector
from .registry import MappingRegistry

if TYPE_CHECKING:
    from .parameters import Parameter, ParameterFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JoinKind(enum.Enum):
    INNER = "INNER JOIN"
    LEFT = "LEFT JOIN"
    RIGHT = "RIGHT JOIN"
    FULL = "FULL JOIN"


@dataclass(frozen=True)
class JoinClause:
    kind: JoinKind
    entity: type
    condition: Node


@dataclass(frozen=True)
class Ordering:
    target: Member | str
    descending: bool = False


class QueryExecutor(Protocol):
    """Statement execution collaborator used by the async helpers."""

    async def execute_query(self, cls: type, sql: str, parameters: list[Parameter]) -> list[Any]: ...

    async def execute_query_first_row(
        self, cls: type, sql: str, parameters: list[Parameter]
    ) -> Any | None: ...

    async def execute_query_dynamic(
        self, sql: str, parameters: list[Parameter]
    ) -> list[dict[str, Any]]: ...

    async def execute_query_first_row_dynamic(
        self, sql: str, parameters: list[Parameter]
    ) -> dict[str, Any] | None: ...


class ColumnSelector:
    """Collect columns from several entities for a multi-table SELECT.

    Every column is qualified with its own entity's table::

        query.select_columns(
            lambda cols: cols.from_(Product, lambda p: (p.id, p.name))
                             .from_(Category, lambda c: c.name)
        )
    """

    def __init__(self, registry: MappingRegistry, pluralize: bool = False):
        self._registry = registry
        self._pluralize = pluralize
        self.columns: list[ProjectedColumn] = []

    def from_(self, entity: type, selector: Callable[[EntityRef], Any]) -> ColumnSelector:
        ref = _entity_ref(self._registry, entity, OWN, self._pluralize)
        self.columns.extend(projection_columns(selector(ref), always_qualify=True))
        return self


class QueryBuilder(Generic[T]):
    """Fluent SELECT/INSERT/UPDATE/DELETE builder for one entity type.

    Args:
        entity: Main mapped type.
        dialect: Dialect instance or database type name ("PostgreSQL", "MsSql"...).
        registry: Shared MappingRegistry (a private one is created if omitted).
        pluralize: Pluralize table names that have no declared override.
        parameter_factory: Builds Parameter objects (default: Parameter).
        executor: Optional executor enabling to_list() and friends.
    """

    def __init__(
        self,
        entity: type[T],
        dialect: Dialect | str = "sqlite",
        registry: MappingRegistry | None = None,
        pluralize: bool = False,
        parameter_factory: ParameterFactory | None = None,
        executor: QueryExecutor | None = None,
    ):
        self.entity = entity
        self.dialect = get_dialect(dialect)
        self.registry = registry or MappingRegistry()
        self.pluralize = pluralize
        self.parameter_factory = parameter_factory
        self.executor = executor
        self.descriptor = self.registry.describe(entity, pluralize)

        self._where: Node | None = None
        self._joins: list[JoinClause] = []
        self._orderings: list[Ordering] = []
        self._raw_columns: list[str] | None = None
        self._projection: list[ProjectedColumn] | None = None
        self._skip: int | None = None
        self._take: int | None = None

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------

    def where(self, predicate: Node | Callable[[EntityRef], Node]) -> QueryBuilder[T]:
        """Add a WHERE predicate (repeated calls are combined with AND).

        Args:
            predicate: Node, or callable receiving the main entity proxy.
        """
        node = self._predicate(predicate, self._ref(self.entity, MAIN))
        self._where = node if self._where is None else Logical("AND", self._where, node)
        return self

    # -------------------------------------------------------------------------
    # Projection
    # -------------------------------------------------------------------------

    def select(self, *columns: str | Callable[[EntityRef], Any]) -> QueryBuilder[T]:
        """Set the SELECT list.

        Either raw column strings (validated now, emitted verbatim, never
        qualified) or a single callable returning members of the main entity.

        Raises:
            InvalidIdentifierError: If a raw column fails validation.
            UnsupportedExpressionError: If the callable returns anything
                other than members.
        """
        if len(columns) == 1 and callable(columns[0]):
            result = columns[0](self._ref(self.entity, MAIN))
            self._projection = projection_columns(result)
            self._raw_columns = None
            return self
        if not columns:
            raise ValueError("select() requires at least one column")
        for column in columns:
            if not isinstance(column, str):
                raise UnsupportedExpressionError(
                    "select() takes column strings or a single callable"
                )
            validate_identifier(column)
        self._raw_columns = list(columns)
        self._projection = None
        return self

    def select_joined(
        self, joined: type, selector: Callable[[EntityRef, EntityRef], Any]
    ) -> QueryBuilder[T]:
        """Two-entity projection; every column is qualified with its table.

        Example:
            query.select_joined(Category, lambda p, c: (p.name, c.name))
        """
        result = selector(
            self._ref(self.entity, MAIN), self._ref(joined, JOINED)
        )
        self._projection = projection_columns(result, always_qualify=True)
        self._raw_columns = None
        return self

    def select_columns(self, build: Callable[[ColumnSelector], ColumnSelector]) -> QueryBuilder[T]:
        """Multi-table projection built with ColumnSelector.from_()."""
        selector = build(ColumnSelector(self.registry, self.pluralize))
        if not selector.columns:
            raise UnsupportedExpressionError("Projection selects no columns")
        self._projection = list(selector.columns)
        self._raw_columns = None
        return self

    # -------------------------------------------------------------------------
    # Joins
    # -------------------------------------------------------------------------

    def join(
        self, entity: type, on: Node | Callable[[EntityRef, EntityRef], Node]
    ) -> QueryBuilder[T]:
        """INNER JOIN entity ON condition (callable receives main, joined)."""
        return self._add_join(JoinKind.INNER, entity, on)

    def left_join(self, entity, on) -> QueryBuilder[T]:
        return self._add_join(JoinKind.LEFT, entity, on)

    def right_join(self, entity, on) -> QueryBuilder[T]:
        return self._add_join(JoinKind.RIGHT, entity, on)

    def full_join(self, entity, on) -> QueryBuilder[T]:
        return self._add_join(JoinKind.FULL, entity, on)

    def _add_join(self, kind: JoinKind, entity: type, on: Any) -> QueryBuilder[T]:
        if callable(on) and not isinstance(on, Node):
            on = on(self._ref(self.entity, MAIN), self._ref(entity, JOINED))
        if not isinstance(on, Node) or isinstance(on, Operand):
            raise UnsupportedExpressionError(
                f"Join condition must be an expression, got {type(on).__name__}"
            )
        self._joins.append(JoinClause(kind, entity, on))
        return self

    # -------------------------------------------------------------------------
    # Ordering and paging
    # -------------------------------------------------------------------------

    def order_by(self, key: str | Member | Callable[[EntityRef], Member]) -> QueryBuilder[T]:
        """Primary ascending ordering.

        A string argument is the legacy form: it is validated as an
        identifier and emitted verbatim.

        Raises:
            ValueError: If an ordering was already set (use then_by).
        """
        if isinstance(key, str):
            logger.warning("String order_by(%r) is deprecated, pass a member instead", key)
            warnings.warn(
                "order_by() with a string is deprecated, pass a member selector",
                DeprecationWarning,
                stacklevel=2,
            )
            self._orderings.append(Ordering(validate_identifier(key)))
            return self
        return self._first_ordering(key, descending=False)

    def order_by_descending(self, key: Member | Callable[[EntityRef], Member]) -> QueryBuilder[T]:
        return self._first_ordering(key, descending=True)

    def then_by(self, key: Member | Callable[[EntityRef], Member]) -> QueryBuilder[T]:
        return self._next_ordering(key, descending=False)

    def then_by_descending(self, key: Member | Callable[[EntityRef], Member]) -> QueryBuilder[T]:
        return self._next_ordering(key, descending=True)

    def _first_ordering(self, key: Any, descending: bool) -> QueryBuilder[T]:
        if self._orderings:
            raise ValueError("order_by() already called; use then_by() for secondary orderings")
        self._orderings.append(Ordering(self._member(key), descending))
        return self

    def _next_ordering(self, key: Any, descending: bool) -> QueryBuilder[T]:
        if not self._orderings:
            raise ValueError("then_by() requires a preceding order_by()")
        self._orderings.append(Ordering(self._member(key), descending))
        return self

    def skip(self, count: int) -> QueryBuilder[T]:
        self._skip = _non_negative("skip", count)
        return self

    def take(self, count: int) -> QueryBuilder[T]:
        self._take = _non_negative("take", count)
        return self

    # -------------------------------------------------------------------------
    # Terminal builds
    # -------------------------------------------------------------------------

    def build_select(self) -> tuple[str, list[Parameter]]:
        """Compile the SELECT statement.

        Raises:
            UnorderedPagingError: If paging is requested without ORDER BY on
                a dialect that needs a deterministic order.
        """
        has_joins = bool(self._joins)
        main_table = self.descriptor.table
        params = ParamCollector(self.parameter_factory)
        compiler = self._compiler(params, {MAIN: main_table}, has_joins)

        if self._raw_columns is not None:
            columns = ", ".join(self._raw_columns)
        elif self._projection is not None:
            columns = render_projection(self._projection, compiler, has_joins)
        else:
            columns = ", ".join(
                f"{main_table}.{c.column}" if has_joins else c.column
                for c in self.descriptor.columns
            )

        sql = f"SELECT {columns} FROM {main_table}"
        for join in self._joins:
            joined_table = self.registry.table(join.entity, self.pluralize)
            on_compiler = self._compiler(
                params, {MAIN: main_table, JOINED: joined_table}, qualify=True
            )
            sql += f" {join.kind.value} {joined_table} ON {on_compiler.compile(join.condition)}"

        if self._where is not None:
            sql += f" WHERE {compiler.compile(self._where)}"

        if self._orderings:
            parts = []
            for ordering in self._orderings:
                target = ordering.target
                column = target if isinstance(target, str) else compiler.column(target)
                parts.append(f"{column} {'DESC' if ordering.descending else 'ASC'}")
            sql += " ORDER BY " + ", ".join(parts)

        if self._skip is not None or self._take is not None:
            if self.dialect.requires_order_for_paging and not self._orderings:
                raise UnorderedPagingError(
                    f"{self.dialect.name} requires order_by() when using skip()/take()"
                )
            sql += self.dialect.paging_clause(self._skip, self._take)

        return sql, params.parameters

    def build_insert(self, entity: T, return_identity: bool = False) -> tuple[str, list[Parameter]]:
        """Compile an INSERT for entity, excluding the identity member.

        Args:
            entity: Instance to insert.
            return_identity: Append dialect syntax returning the new identity.
        """
        pairs = self._column_values(entity)
        if not pairs:
            raise ValueError(f"{self.entity.__name__} has no insertable columns")
        params = ParamCollector(self.parameter_factory)
        columns = [c for c, _ in pairs]
        placeholders = [params.add(v) for _, v in pairs]
        identity = self.descriptor.identity_column if return_identity else None
        sql = self.dialect.insert_sql(self.descriptor.table, columns, placeholders, identity)
        return sql, params.parameters

    def build_update(self, entity: T) -> tuple[str, list[Parameter]]:
        """Compile an UPDATE of all non-identity columns.

        Raises:
            MissingPredicateError: If no where() was configured.
        """
        if self._where is None:
            raise MissingPredicateError("WHERE clause is required for UPDATE statements")
        pairs = self._column_values(entity)
        if not pairs:
            raise ValueError(f"{self.entity.__name__} has no updatable columns")
        params = ParamCollector(self.parameter_factory)
        assignments = ", ".join(f"{c} = {params.add(v)}" for c, v in pairs)
        where = self._compiler(params, {MAIN: self.descriptor.table}, False).compile(self._where)
        return f"UPDATE {self.descriptor.table} SET {assignments} WHERE {where}", params.parameters

    def build_delete(self) -> tuple[str, list[Parameter]]:
        """Compile a DELETE.

        Raises:
            MissingPredicateError: If no where() was configured.
        """
        if self._where is None:
            raise MissingPredicateError(
                "WHERE clause is required for DELETE statements to prevent deleting all rows"
            )
        params = ParamCollector(self.parameter_factory)
        where = self._compiler(params, {MAIN: self.descriptor.table}, False).compile(self._where)
        return f"DELETE FROM {self.descriptor.table} WHERE {where}", params.parameters

    # -------------------------------------------------------------------------
    # Execution helpers
    # -------------------------------------------------------------------------

    async def to_list(self, result_type: type | None = None) -> list[Any]:
        """Execute build_select() and map every row to result_type (default: entity)."""
        sql, params = self.build_select()
        return await self._require_executor().execute_query(result_type or self.entity, sql, params)

    async def first_or_default(self, result_type: type | None = None) -> Any | None:
        """Execute build_select() and map the first row, or return None."""
        sql, params = self.build_select()
        return await self._require_executor().execute_query_first_row(
            result_type or self.entity, sql, params
        )

    async def to_dynamic_list(self) -> list[dict[str, Any]]:
        """Execute build_select() returning column-name keyed dicts."""
        sql, params = self.build_select()
        return await self._require_executor().execute_query_dynamic(sql, params)

    async def first_or_default_dynamic(self) -> dict[str, Any] | None:
        sql, params = self.build_select()
        return await self._require_executor().execute_query_first_row_dynamic(sql, params)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ref(self, entity: type, source: str) -> EntityRef:
        return _entity_ref(self.registry, entity, source, self.pluralize)

    def _compiler(
        self, params: ParamCollector, qualifiers: dict[str, str], qualify: bool
    ) -> PredicateCompiler:
        return PredicateCompiler(
            self.registry.resolver,
            self.dialect,
            params,
            qualifiers,
            qualify=qualify,
            pluralize=self.pluralize,
        )

    def _predicate(self, predicate: Any, ref: EntityRef) -> Node:
        if callable(predicate) and not isinstance(predicate, Node):
            predicate = predicate(ref)
        if not isinstance(predicate, Node) or isinstance(predicate, Operand):
            raise UnsupportedExpressionError(
                f"Expected a predicate expression, got {type(predicate).__name__}"
            )
        return predicate

    def _member(self, key: Any) -> Member:
        if callable(key) and not isinstance(key, Member):
            key = key(self._ref(self.entity, MAIN))
        if not isinstance(key, Member):
            raise UnsupportedExpressionError(
                f"Ordering key must be a member, got {type(key).__name__}"
            )
        return key

    def _column_values(self, entity: Any) -> list[tuple[str, Any]]:
        """Ordered (column, value) pairs excluding the identity column."""
        identity_column = self.descriptor.identity_column.lower()
        accessor = self.registry.accessor(self.entity)
        if accessor is not None:
            values = accessor.extract(entity)
            return [
                (column, value)
                for column, value in zip(accessor.columns, values, strict=True)
                if column.lower() != identity_column
            ]
        return [
            (col.column, getattr(entity, col.member))
            for col in self.descriptor.columns
            if col.member != self.descriptor.identity
        ]

    def _require_executor(self) -> QueryExecutor:
        if self.executor is None:
            raise RuntimeError(
                "QueryBuilder is not bound to a client. Use 'client.query(Entity)'"
            )
        return self.executor


def _entity_ref(registry: MappingRegistry, entity: type, source: str, pluralize: bool) -> EntityRef:
    descriptor = registry.describe(entity, pluralize)
    return EntityRef(entity, source, [c.member for c in descriptor.columns])


def _non_negative(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name}() requires a non-negative integer, got {value!r}")
    return value


__all__ = [
    "ColumnSelector",
    "JoinClause",
    "JoinKind",
    "Ordering",
    "QueryBuilder",
    "QueryExecutor",
]
