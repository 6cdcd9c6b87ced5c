# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Entity and column descriptors derived from mapped Python types.

A mapped type can be a dataclass, a pydantic model or any class with
annotated attributes. A plain class without class-level annotations is
described from its __init__ arguments instead. Members are enumerated
in declaration order; private names (leading underscore) and ClassVar
annotations are skipped.

Each member gets a ValueKind derived from its annotation. The kind only
drives default-value fallback in the row mapper and parameter type
inference; it never affects generated SQL.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import inspect
import types
import typing
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from ..errors import UnknownMappingError

if TYPE_CHECKING:
    from .naming import NameResolver


class ValueKind(enum.Enum):
    """Declared value category of a mapped member."""

    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    STRING = "string"
    BYTES = "bytes"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    UUID = "uuid"
    OBJECT = "object"


# Zero values for non-nullable value kinds; all other kinds default to None
_ZERO_VALUES: dict[ValueKind, Any] = {
    ValueKind.INTEGER: 0,
    ValueKind.FLOAT: 0.0,
    ValueKind.DECIMAL: decimal.Decimal(0),
    ValueKind.BOOLEAN: False,
    ValueKind.UUID: uuid.UUID(int=0),
}

# Order matters: bool before int, datetime before date
_KIND_BY_TYPE: tuple[tuple[type, ValueKind], ...] = (
    (bool, ValueKind.BOOLEAN),
    (int, ValueKind.INTEGER),
    (float, ValueKind.FLOAT),
    (decimal.Decimal, ValueKind.DECIMAL),
    (str, ValueKind.STRING),
    (bytes, ValueKind.BYTES),
    (bytearray, ValueKind.BYTES),
    (datetime.datetime, ValueKind.DATETIME),
    (datetime.date, ValueKind.DATE),
    (datetime.time, ValueKind.TIME),
    (uuid.UUID, ValueKind.UUID),
)


def value_kind(annotation: Any) -> tuple[ValueKind, bool]:
    """Classify an annotation into (ValueKind, nullable).

    ``int | None`` and ``Optional[int]`` are nullable integers. Unions of
    several concrete types, Any and unknown classes map to OBJECT, which
    is always nullable.
    """
    if annotation is None or annotation is type(None) or annotation is Any:
        return ValueKind.OBJECT, True
    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return value_kind(typing.get_args(annotation)[0])
    if origin is typing.Union or origin is types.UnionType:
        args = typing.get_args(annotation)
        concrete = [a for a in args if a is not type(None)]
        if len(concrete) == 1:
            kind, _ = value_kind(concrete[0])
            return kind, len(concrete) != len(args) or kind is ValueKind.OBJECT
        return ValueKind.OBJECT, True
    if isinstance(annotation, type) and not issubclass(annotation, enum.Enum):
        for tp, kind in _KIND_BY_TYPE:
            if issubclass(annotation, tp):
                # Reference kinds always permit None
                nullable = kind not in _ZERO_VALUES
                return kind, nullable
    return ValueKind.OBJECT, True


@dataclass(frozen=True)
class ColumnDescriptor:
    """One mapped member and its resolved column."""

    member: str
    column: str
    kind: ValueKind
    nullable: bool
    has_default: bool = False

    def fallback(self) -> Any:
        """Value used when the row has no usable value for this member."""
        if self.nullable:
            return None
        return _ZERO_VALUES.get(self.kind)


@dataclass(frozen=True)
class EntityDescriptor:
    """Resolved table name and ordered columns of a mapped type."""

    entity: type
    table: str
    columns: tuple[ColumnDescriptor, ...]
    identity: str
    _by_member: dict[str, ColumnDescriptor] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self._by_member.update((c.member, c) for c in self.columns)

    def member(self, member: str) -> ColumnDescriptor:
        """Return the descriptor of a member.

        Raises:
            UnknownMappingError: If the type has no such member.
        """
        try:
            return self._by_member[member]
        except KeyError:
            raise UnknownMappingError(
                f"{self.entity.__name__} has no mapped member '{member}'"
            ) from None

    @property
    def identity_column(self) -> str:
        """Resolved column name of the identity member."""
        col = self._by_member.get(self.identity)
        return col.column if col else self.identity

    @property
    def is_pydantic(self) -> bool:
        return isinstance(self.entity, type) and issubclass(self.entity, BaseModel)


def entity_members(cls: type) -> list[tuple[str, Any, bool]]:
    """Enumerate (name, annotation, has_default) for the mapped members of cls.

    Raises:
        UnknownMappingError: If cls declares no members at all.
    """
    members: list[tuple[str, Any, bool]] = []
    if isinstance(cls, type) and issubclass(cls, BaseModel):
        for name, info in cls.model_fields.items():
            members.append((name, info.annotation, not info.is_required()))
    elif dataclasses.is_dataclass(cls):
        hints = _type_hints(cls)
        for f in dataclasses.fields(cls):
            has_default = (
                f.default is not dataclasses.MISSING
                or f.default_factory is not dataclasses.MISSING
            )
            members.append((f.name, hints.get(f.name, f.type), has_default))
    else:
        for name, annotation in _type_hints(cls).items():
            if name.startswith("_") or typing.get_origin(annotation) is typing.ClassVar:
                continue
            if annotation is typing.ClassVar:
                continue
            members.append((name, annotation, hasattr(cls, name)))
        if not members:
            members = _init_members(cls)
    if not members:
        raise UnknownMappingError(f"{cls.__name__} declares no mapped members")
    return members


def describe(cls: type, resolver: NameResolver, pluralize: bool = False) -> EntityDescriptor:
    """Build the EntityDescriptor of cls using the resolver's naming contract."""
    columns = []
    for name, annotation, has_default in entity_members(cls):
        kind, nullable = value_kind(annotation)
        columns.append(
            ColumnDescriptor(
                member=name,
                column=resolver.column(cls, name),
                kind=kind,
                nullable=nullable,
                has_default=has_default,
            )
        )
    return EntityDescriptor(
        entity=cls,
        table=resolver.table(cls, pluralize),
        columns=tuple(columns),
        identity=resolver.identity(cls),
    )


def _init_members(cls: type) -> list[tuple[str, Any, bool]]:
    """Members of a plain class that only declares them as __init__ arguments."""
    init = cls.__init__
    if init is object.__init__:
        return []
    try:
        signature = inspect.signature(init)
    except (TypeError, ValueError):
        return []
    try:
        hints = typing.get_type_hints(init, include_extras=True)
    except NameError:
        hints = {}
    members: list[tuple[str, Any, bool]] = []
    for index, (name, param) in enumerate(signature.parameters.items()):
        if index == 0 or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if name.startswith("_"):
            continue
        annotation = hints.get(name, Any)
        members.append((name, annotation, param.default is not param.empty))
    return members


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except NameError:
        # Unresolvable forward references: fall back to raw annotations
        hints: dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            hints.update(getattr(klass, "__annotations__", {}))
        return hints


__all__ = [
    "ColumnDescriptor",
    "EntityDescriptor",
    "ValueKind",
    "describe",
    "entity_members",
    "value_kind",
]
