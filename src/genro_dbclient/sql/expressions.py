# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Predicate expression tree built from Python operators.

Caller code never hands over source text: it builds node values directly.
The usual entry point is an EntityRef proxy whose attributes are Member
nodes; comparison operators and a few methods on a Member return new
nodes, and ``&``, ``|``, ``~`` combine predicates::

    p = EntityRef(Product)
    (p.price > 10) & p.name.contains("widget")
    ~p.category_id.in_([1, 2, 3])
    p.deleted_at.is_null()

Query builders accept the same thing through lambdas, calling them with
the appropriate EntityRef proxies::

    query.where(lambda p: (p.price > 10) | (p.price == None))

Python's ``and``, ``or``, ``not`` and chained comparisons need a truth
value, which nodes refuse to provide: they raise UnsupportedExpressionError
instead of silently evaluating to one operand. Arithmetic on members builds
Operation nodes, which the compiler rejects.
"""

from __future__ import annotations

import enum
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from functools import reduce
from typing import Any

from ..errors import UnknownMappingError, UnsupportedExpressionError

MAIN = "main"
JOINED = "joined"
# Qualified with the member entity's own table
OWN = "own"

COMPARISON_OPERATORS = frozenset({"=", "<>", ">", ">=", "<", "<="})


class MatchKind(enum.Enum):
    CONTAINS = "contains"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"


class Node:
    """Base class of all expression nodes."""

    __slots__ = ()

    def __and__(self, other: Any) -> Logical:
        return Logical("AND", self, _as_node(other))

    def __rand__(self, other: Any) -> Logical:
        return Logical("AND", _as_node(other), self)

    def __or__(self, other: Any) -> Logical:
        return Logical("OR", self, _as_node(other))

    def __ror__(self, other: Any) -> Logical:
        return Logical("OR", _as_node(other), self)

    def __invert__(self) -> Not:
        return Not(self)

    def __bool__(self) -> bool:
        raise UnsupportedExpressionError(
            "Expression nodes have no truth value: use &, | and ~ "
            "instead of and, or, not and chained comparisons"
        )


class Operand(Node):
    """Node that can appear on either side of a comparison."""

    __slots__ = ()

    # Comparisons ------------------------------------------------------------

    def __eq__(self, other: Any) -> Comparison:  # type: ignore[override]
        return Comparison("=", self, _as_operand(other))

    def __ne__(self, other: Any) -> Comparison:  # type: ignore[override]
        return Comparison("<>", self, _as_operand(other))

    def __lt__(self, other: Any) -> Comparison:
        return Comparison("<", self, _as_operand(other))

    def __le__(self, other: Any) -> Comparison:
        return Comparison("<=", self, _as_operand(other))

    def __gt__(self, other: Any) -> Comparison:
        return Comparison(">", self, _as_operand(other))

    def __ge__(self, other: Any) -> Comparison:
        return Comparison(">=", self, _as_operand(other))

    __hash__ = None  # type: ignore[assignment]

    # Arithmetic and concatenation (never lowered) ---------------------------

    def __add__(self, other: Any) -> Operation:
        return Operation("+", self, _as_operand(other))

    def __radd__(self, other: Any) -> Operation:
        return Operation("+", _as_operand(other), self)

    def __sub__(self, other: Any) -> Operation:
        return Operation("-", self, _as_operand(other))

    def __rsub__(self, other: Any) -> Operation:
        return Operation("-", _as_operand(other), self)

    def __mul__(self, other: Any) -> Operation:
        return Operation("*", self, _as_operand(other))

    def __rmul__(self, other: Any) -> Operation:
        return Operation("*", _as_operand(other), self)

    def __truediv__(self, other: Any) -> Operation:
        return Operation("/", self, _as_operand(other))

    def __mod__(self, other: Any) -> Operation:
        return Operation("%", self, _as_operand(other))


@dataclass(frozen=True, eq=False)
class Member(Operand):
    """Access to a mapped member of an entity.

    Attributes:
        entity: Mapped type owning the member.
        name: Member (attribute) name, resolved to a column at compile time.
        source: MAIN for the query's main entity, JOINED for the other side
            of a join condition, OWN to qualify with the entity's own table.
    """

    entity: type
    name: str
    source: str = MAIN

    def contains(self, value: str) -> StringMatch:
        return StringMatch(MatchKind.CONTAINS, self, value)

    def startswith(self, value: str) -> StringMatch:
        return StringMatch(MatchKind.STARTS_WITH, self, value)

    def endswith(self, value: str) -> StringMatch:
        return StringMatch(MatchKind.ENDS_WITH, self, value)

    def in_(self, values: Iterable[Any]) -> InList:
        """Membership test; the iterable is materialized immediately."""
        if isinstance(values, (str, bytes)):
            raise UnsupportedExpressionError(
                f"in_() expects a collection of values, got {type(values).__name__}"
            )
        return InList(self, tuple(values))

    def is_null(self) -> Comparison:
        return Comparison("=", self, Value(None))

    def is_not_null(self) -> Comparison:
        return Comparison("<>", self, Value(None))

    def __repr__(self) -> str:
        return f"Member({self.entity.__name__}.{self.name}, {self.source})"


@dataclass(frozen=True, eq=False)
class Value(Operand):
    """Literal or captured value, bound as a parameter."""

    value: Any


@dataclass(frozen=True, eq=False)
class Operation(Operand):
    """Arithmetic or concatenation between operands (not lowerable)."""

    op: str
    left: Node
    right: Node


@dataclass(frozen=True, eq=False)
class Comparison(Node):
    op: str
    left: Node
    right: Node


@dataclass(frozen=True, eq=False)
class Logical(Node):
    op: str
    left: Node
    right: Node


@dataclass(frozen=True, eq=False)
class Not(Node):
    operand: Node


@dataclass(frozen=True, eq=False)
class StringMatch(Node):
    kind: MatchKind
    member: Member
    value: Any


@dataclass(frozen=True, eq=False)
class InList(Node):
    member: Member
    values: tuple[Any, ...]


class EntityRef:
    """Attribute proxy producing Member nodes for one entity.

    Args:
        entity: Mapped type.
        source: Owning side, MAIN or JOINED.
        members: Known member names. When given, unknown attributes raise
            UnknownMappingError instead of producing a Member.
    """

    __slots__ = ("_entity", "_source", "_members")

    def __init__(
        self,
        entity: type,
        source: str = MAIN,
        members: Collection[str] | None = None,
    ):
        self._entity = entity
        self._source = source
        self._members = frozenset(members) if members is not None else None

    def __getattr__(self, name: str) -> Member:
        if name.startswith("_"):
            raise AttributeError(name)
        if self._members is not None and name not in self._members:
            raise UnknownMappingError(
                f"{self._entity.__name__} has no mapped member '{name}'"
            )
        return Member(self._entity, name, self._source)

    def __repr__(self) -> str:
        return f"EntityRef({self._entity.__name__}, {self._source})"


# -----------------------------------------------------------------------------
# Combinators
# -----------------------------------------------------------------------------


def and_(*nodes: Node) -> Node:
    """Combine predicates with AND, left to right."""
    return reduce(lambda a, b: Logical("AND", a, b), _checked(nodes))


def or_(*nodes: Node) -> Node:
    """Combine predicates with OR, left to right."""
    return reduce(lambda a, b: Logical("OR", a, b), _checked(nodes))


def not_(node: Node) -> Not:
    return Not(_as_node(node))


def _checked(nodes: tuple[Node, ...]) -> list[Node]:
    if not nodes:
        raise UnsupportedExpressionError("At least one predicate is required")
    return [_as_node(n) for n in nodes]


def _as_node(value: Any) -> Node:
    if isinstance(value, Node):
        return value
    raise UnsupportedExpressionError(
        f"Cannot combine a predicate with {type(value).__name__}"
    )


def _as_operand(value: Any) -> Node:
    return value if isinstance(value, Node) else Value(value)


__all__ = [
    "COMPARISON_OPERATORS",
    "JOINED",
    "MAIN",
    "OWN",
    "Comparison",
    "EntityRef",
    "InList",
    "Logical",
    "MatchKind",
    "Member",
    "Node",
    "Not",
    "Operand",
    "Operation",
    "StringMatch",
    "Value",
    "and_",
    "not_",
    "or_",
]
