# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Row-to-object mapping.

RowMapper.map() resolves a target type in this order:

1. A mapper registered with ``registry.register_mapper(cls, fn)`` is called
   with the cursor and its result returned as-is.
2. Otherwise the reflective path matches cursor columns to members by
   resolved column name (case-insensitive) and builds the instance.

Reflective rules:
    - column present, value not null: value assigned (with light coercion,
      e.g. datetime -> date for date members, 0/1 -> bool)
    - column present, value null: None for nullable/reference kinds, the
      zero value (0, 0.0, Decimal(0), False) for non-nullable value kinds
    - column missing: member keeps its declared default, or gets the same
      fallback as a null

Dataclasses and plain classes are built by keyword construction; a plain
class whose constructor needs an argument the row cannot supply is
created without __init__ and filled by attribute assignment. Pydantic
models use model_construct().

Missing columns and nulls are never errors. map_dynamic() returns a plain
dict for result shapes that have no declared type.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import functools
import inspect
import logging
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from .sql.entity import ValueKind

if TYPE_CHECKING:
    from .cursor import RowCursor
    from .sql.entity import ColumnDescriptor, EntityDescriptor
    from .sql.registry import MappingRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (descriptor, ordinal or None when the row lacks the column)
Plan = list[tuple["ColumnDescriptor", "int | None"]]


class RowMapper:
    """Map cursor rows to typed instances or dicts.

    Args:
        registry: Shared MappingRegistry providing descriptors and mappers.
        pluralize: Pluralization flag used when describing target types.
    """

    def __init__(self, registry: MappingRegistry, pluralize: bool = False):
        self.registry = registry
        self.pluralize = pluralize

    def map(self, cls: type[T], cursor: RowCursor) -> T:
        """Map one row to an instance of cls."""
        fn = self.registry.mapper(cls)
        if fn is not None:
            return fn(cursor)
        descriptor = self.registry.describe(cls, self.pluralize)
        return self._build(descriptor, self._plan(descriptor, cursor), cursor)

    def map_all(self, cls: type[T], cursors: Iterable[RowCursor]) -> list[T]:
        """Map every row; the reflective plan is computed once per result set."""
        fn = self.registry.mapper(cls)
        if fn is not None:
            return [fn(cursor) for cursor in cursors]
        descriptor = self.registry.describe(cls, self.pluralize)
        plan: Plan | None = None
        results = []
        for cursor in cursors:
            if plan is None:
                plan = self._plan(descriptor, cursor)
            results.append(self._build(descriptor, plan, cursor))
        return results

    def map_dynamic(self, cursor: RowCursor) -> dict[str, Any]:
        """Map one row to a dict keyed by column name (null -> None).

        Duplicate column names keep the last value.
        """
        return {
            cursor.get_name(i): None if cursor.is_null(i) else cursor.get_value(i)
            for i in range(cursor.field_count)
        }

    # -------------------------------------------------------------------------
    # Reflective path
    # -------------------------------------------------------------------------

    def _plan(self, descriptor: EntityDescriptor, cursor: RowCursor) -> Plan:
        ordinals: dict[str, int] = {}
        for i in range(cursor.field_count):
            ordinals.setdefault(cursor.get_name(i).lower(), i)
        plan: Plan = [(col, ordinals.get(col.column.lower())) for col in descriptor.columns]
        logger.debug(
            "Reflective mapping for %s: %d/%d members matched",
            descriptor.entity.__name__,
            sum(1 for _, o in plan if o is not None),
            len(plan),
        )
        return plan

    def _build(self, descriptor: EntityDescriptor, plan: Plan, cursor: RowCursor) -> Any:
        values: dict[str, Any] = {}
        for col, ordinal in plan:
            if ordinal is None:
                if not col.has_default:
                    values[col.member] = col.fallback()
            elif cursor.is_null(ordinal):
                values[col.member] = col.fallback()
            else:
                values[col.member] = coerce_value(cursor.get_value(ordinal), col.kind)

        cls = descriptor.entity
        if descriptor.is_pydantic:
            return cls.model_construct(**values)
        if dataclasses.is_dataclass(cls):
            init_values = {k: v for k, v in values.items() if k in _init_fields(cls)}
            instance = cls(**init_values)
            for name, value in values.items():
                if name not in init_values:
                    object.__setattr__(instance, name, value)
            return instance
        return _construct(cls, values)


def coerce_value(value: Any, kind: ValueKind) -> Any:
    """Adapt a driver value to the member's declared kind where unambiguous."""
    if kind is ValueKind.DATE:
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, str):
            return datetime.date.fromisoformat(value[:10])
    elif kind is ValueKind.DATETIME:
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time())
        if isinstance(value, str):
            return datetime.datetime.fromisoformat(value)
    elif kind is ValueKind.TIME:
        if isinstance(value, datetime.timedelta):
            return (datetime.datetime.min + value).time()
        if isinstance(value, str):
            return datetime.time.fromisoformat(value)
    elif kind is ValueKind.BOOLEAN:
        if isinstance(value, int) and not isinstance(value, bool):
            return bool(value)
    elif kind is ValueKind.DECIMAL:
        if isinstance(value, (int, float, str)) and not isinstance(value, bool):
            return decimal.Decimal(str(value))
    elif kind is ValueKind.FLOAT:
        if isinstance(value, (int, decimal.Decimal)) and not isinstance(value, bool):
            return float(value)
    elif kind is ValueKind.UUID:
        if isinstance(value, str):
            return uuid.UUID(value)
        if isinstance(value, (bytes, bytearray)) and len(value) == 16:
            return uuid.UUID(bytes=bytes(value))
    elif kind is ValueKind.BYTES:
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
    return value


def _init_fields(cls: type) -> frozenset[str]:
    return frozenset(f.name for f in dataclasses.fields(cls) if f.init)


@functools.lru_cache(maxsize=256)
def _init_keywords(cls: type) -> tuple[frozenset[str], frozenset[str]] | None:
    """(accepted, required) keyword names of cls(), or None if not keyword-callable."""
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return None
    accepted: set[str] = set()
    required: set[str] = set()
    for name, param in signature.parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param.kind is param.POSITIONAL_ONLY:
            if param.default is param.empty:
                return None
            continue
        accepted.add(name)
        if param.default is param.empty:
            required.add(name)
    return frozenset(accepted), frozenset(required)


def _construct(cls: type, values: dict[str, Any]) -> Any:
    """Build a plain class by keyword construction, else by attribute assignment.

    Members the constructor does not accept are assigned afterwards. When
    the constructor requires an argument the row cannot supply, the
    instance is created without running __init__.
    """
    keywords = _init_keywords(cls)
    if keywords is not None and keywords[1].issubset(values):
        accepted = keywords[0]
        instance = cls(**{k: v for k, v in values.items() if k in accepted})
        rest = {k: v for k, v in values.items() if k not in accepted}
    else:
        instance = cls.__new__(cls)
        rest = values
    for name, value in rest.items():
        setattr(instance, name, value)
    return instance


__all__ = ["RowMapper", "coerce_value"]
