# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Lower expression trees into parameterized SQL fragments.

PredicateCompiler walks a predicate tree depth-first and produces SQL left
to right. Every literal becomes a ``@pN`` placeholder allocated from a
shared ParamCollector, so placeholder numbering always follows emission
order.

Lowering rules:
    comparison      (<left> <op> <right>)
    compare to None (<col> IS NULL) / (<col> IS NOT NULL)
    AND / OR        (<left> AND <right>)
    NOT             NOT (<inner>)
    contains etc.   <col> LIKE @pN [ESCAPE '~']   (ILIKE on PostgreSQL)
    in_([...])      <col> IN (@p0, @p1, ...)
    in_([])         1=0

Member references are qualified with their table only when the compiler
is created with ``qualify=True`` (the query has joins, or this is a join
condition).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import UnsupportedExpressionError
from .dialects import ESCAPE_CHAR
from .expressions import (
    COMPARISON_OPERATORS,
    Comparison,
    InList,
    Logical,
    MatchKind,
    Member,
    Node,
    Not,
    StringMatch,
    Value,
)
from .identifiers import validate_identifier
from .parameters import ParamCollector

if TYPE_CHECKING:
    from .dialects import Dialect
    from .naming import NameResolver
    from .parameters import Parameter, ParameterFactory


class PredicateCompiler:
    """Compile predicate nodes against one statement's parameter collector.

    Args:
        resolver: Name resolver for table and column names.
        dialect: Target SQL dialect.
        params: Shared collector; placeholders continue its numbering.
        qualifiers: Table identifier per member source (MAIN/JOINED).
        qualify: Prefix columns with their table identifier.
        pluralize: Pluralization flag used for tables not in qualifiers.
    """

    def __init__(
        self,
        resolver: NameResolver,
        dialect: Dialect,
        params: ParamCollector,
        qualifiers: Mapping[str, str] | None = None,
        qualify: bool = False,
        pluralize: bool = False,
    ):
        self.resolver = resolver
        self.dialect = dialect
        self.params = params
        self.qualifiers = dict(qualifiers or {})
        self.qualify = qualify
        self.pluralize = pluralize

    def compile(self, node: Node) -> str:
        """Return the SQL fragment for node, binding its values."""
        if isinstance(node, Comparison):
            return self._comparison(node)
        if isinstance(node, Logical):
            if node.op not in ("AND", "OR"):
                raise UnsupportedExpressionError(f"Unsupported logical operator: {node.op}")
            return f"({self.compile(node.left)} {node.op} {self.compile(node.right)})"
        if isinstance(node, Not):
            return f"NOT ({self.compile(node.operand)})"
        if isinstance(node, StringMatch):
            return self._string_match(node)
        if isinstance(node, InList):
            return self._in_list(node)
        raise UnsupportedExpressionError(
            f"Cannot use {type(node).__name__} as a predicate"
        )

    def column(self, member: Member) -> str:
        """Resolved (and possibly qualified) column reference for member."""
        name = self.resolver.column(member.entity, member.name)
        if not self.qualify:
            return name
        return f"{self.table_of(member)}.{name}"

    def table_of(self, member: Member) -> str:
        qualifier = self.qualifiers.get(member.source)
        if qualifier is None:
            qualifier = self.resolver.table(member.entity, self.pluralize)
        return qualifier

    # -------------------------------------------------------------------------
    # Node handlers
    # -------------------------------------------------------------------------

    def _comparison(self, node: Comparison) -> str:
        if node.op not in COMPARISON_OPERATORS:
            raise UnsupportedExpressionError(f"Unsupported comparison operator: {node.op}")
        if node.op in ("=", "<>"):
            null_side = _null_operand(node)
            if null_side is not None:
                keyword = "IS NULL" if node.op == "=" else "IS NOT NULL"
                return f"({self._operand(null_side)} {keyword})"
        left = self._operand(node.left)
        right = self._operand(node.right)
        return f"({left} {node.op} {right})"

    def _operand(self, node: Node) -> str:
        if isinstance(node, Member):
            return self.column(node)
        if isinstance(node, Value):
            return self.params.add(node.value)
        raise UnsupportedExpressionError(
            f"Cannot use {type(node).__name__} as a comparison operand"
        )

    def _string_match(self, node: StringMatch) -> str:
        if not isinstance(node.value, str):
            raise UnsupportedExpressionError(
                f"{node.kind.value}() expects a str, got {type(node.value).__name__}"
            )
        escaped, did_escape = self.dialect.escape_like(node.value)
        if node.kind is MatchKind.CONTAINS:
            pattern = f"%{escaped}%"
        elif node.kind is MatchKind.STARTS_WITH:
            pattern = f"{escaped}%"
        else:
            pattern = f"%{escaped}"
        sql = f"{self.column(node.member)} {self.dialect.like_keyword} {self.params.add(pattern)}"
        if did_escape:
            sql += f" ESCAPE '{ESCAPE_CHAR}'"
        return sql

    def _in_list(self, node: InList) -> str:
        if not node.values:
            return "1=0"
        placeholders = ", ".join(self.params.add(v) for v in node.values)
        return f"{self.column(node.member)} IN ({placeholders})"


def _null_operand(node: Comparison) -> Node | None:
    """Return the non-null side of a comparison against None, if any."""
    if isinstance(node.right, Value) and node.right.value is None:
        return node.left
    if isinstance(node.left, Value) and node.left.value is None:
        return node.right
    return None


# -----------------------------------------------------------------------------
# Projections
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectedColumn:
    """One SELECT list entry.

    Attributes:
        member: Member providing the column.
        alias: Optional output alias (``col AS alias``).
        always_qualify: Qualify even when the query has no joins
            (two-parameter and multi-table projections).
    """

    member: Member
    alias: str | None = None
    always_qualify: bool = False


def projection_columns(result: Any, always_qualify: bool = False) -> list[ProjectedColumn]:
    """Normalize a projection lambda result into ProjectedColumn entries.

    Accepts a single Member, a tuple/list of Members, or a dict mapping
    output alias to Member.

    Raises:
        UnsupportedExpressionError: For any other shape.
        InvalidIdentifierError: For an alias outside the identifier grammar.
    """
    if isinstance(result, Member):
        return [ProjectedColumn(result, None, always_qualify)]
    if isinstance(result, dict):
        columns = []
        for alias, member in result.items():
            _require_member(member)
            columns.append(ProjectedColumn(member, validate_identifier(alias), always_qualify))
        return columns
    if isinstance(result, (tuple, list)):
        if not result:
            raise UnsupportedExpressionError("Projection selects no columns")
        for member in result:
            _require_member(member)
        return [ProjectedColumn(m, None, always_qualify) for m in result]
    raise UnsupportedExpressionError(
        f"Projections may only select members, got {type(result).__name__}"
    )


def render_projection(
    columns: list[ProjectedColumn], compiler: PredicateCompiler, has_joins: bool
) -> str:
    """Render a SELECT list."""
    parts = []
    for item in columns:
        name = compiler.resolver.column(item.member.entity, item.member.name)
        if has_joins or item.always_qualify:
            name = f"{compiler.table_of(item.member)}.{name}"
        if item.alias:
            name = f"{name} AS {item.alias}"
        parts.append(name)
    return ", ".join(parts)


def _require_member(value: Any) -> None:
    if not isinstance(value, Member):
        raise UnsupportedExpressionError(
            f"Projections may only select members, got {type(value).__name__}"
        )


def compile_predicate(
    node: Node,
    resolver: NameResolver,
    dialect: Dialect,
    qualifiers: Mapping[str, str] | None = None,
    qualify: bool = False,
    factory: ParameterFactory | None = None,
) -> tuple[str, list[Parameter]]:
    """Compile a standalone predicate into (sql, parameters)."""
    params = ParamCollector(factory)
    sql = PredicateCompiler(resolver, dialect, params, qualifiers, qualify).compile(node)
    return sql, params.parameters


__all__ = [
    "PredicateCompiler",
    "ProjectedColumn",
    "compile_predicate",
    "projection_columns",
    "render_projection",
]
