# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Shared mapping registry: naming contracts, descriptors, mappers, accessors.

One MappingRegistry is created at application startup and handed to every
DbClient, QueryBuilder and RowMapper that should share the same mappings.

Contents:
    - naming contract (table/column/identity overrides) via entity()
    - EntityDescriptor cache keyed by (type, pluralize)
    - row mappers: fn(cursor) -> instance, used before reflection
    - accessors: ordered columns + extractor, used by INSERT/UPDATE builds

Concurrency:
    Reads never lock. Writes copy the affected dict under a lock and swap
    the reference, so readers see either the previous or the new entry,
    never a partial one. Re-registering a type replaces the previous entry.

Example:
    registry = MappingRegistry()

    @registry.entity(table="products", columns={"name": "product_name"})
    @dataclass
    class Product:
        id: int = 0
        name: str = ""
        price: Decimal = Decimal(0)

    registry.register_mapper(Product, lambda cur: Product(cur.get_int(0), ...))
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar, overload

from .entity import EntityDescriptor, describe
from .naming import NameResolver

if TYPE_CHECKING:
    from ..cursor import RowCursor

T = TypeVar("T")

RowMapperFn = Callable[["RowCursor"], Any]


@dataclass(frozen=True)
class Accessor:
    """Pre-registered value extraction for INSERT/UPDATE.

    Attributes:
        columns: Column names, in the order extract() returns values.
        extract: Function returning the column values of an instance.
    """

    columns: tuple[str, ...]
    extract: Callable[[Any], Sequence[Any]]


class MappingRegistry:
    """Shared registry of naming contracts, descriptors, mappers and accessors."""

    def __init__(self, resolver: NameResolver | None = None):
        self.resolver = resolver or NameResolver()
        self._lock = threading.Lock()
        self._descriptors: dict[tuple[type, bool], EntityDescriptor] = {}
        self._mappers: dict[type, RowMapperFn] = {}
        self._accessors: dict[type, Accessor] = {}

    # -------------------------------------------------------------------------
    # Naming contract
    # -------------------------------------------------------------------------

    @overload
    def entity(
        self,
        cls: type[T],
        *,
        table: str | None = ...,
        columns: Mapping[str, str] | None = ...,
        identity: str | None = ...,
    ) -> type[T]: ...

    @overload
    def entity(
        self,
        cls: None = ...,
        *,
        table: str | None = ...,
        columns: Mapping[str, str] | None = ...,
        identity: str | None = ...,
    ) -> Callable[[type[T]], type[T]]: ...

    def entity(self, cls=None, *, table=None, columns=None, identity=None):
        """Declare naming overrides for a mapped type.

        Usable directly or as a class decorator::

            registry.entity(Order, table="orders")

            @registry.entity(columns={"name": "category_name"})
            class Category: ...

        Args:
            cls: Mapped type (omit to get a decorator).
            table: Explicit table name, never pluralized.
            columns: Member name to column name overrides.
            identity: Member treated as identity, excluded from INSERT/UPDATE.
        """

        def register(target: type[T]) -> type[T]:
            self.resolver.declare(target, table=table, columns=columns, identity=identity)
            with self._lock:
                self._descriptors = {
                    k: v for k, v in self._descriptors.items() if k[0] is not target
                }
            return target

        if cls is None:
            return register
        return register(cls)

    def table(self, cls: type, pluralize: bool = False) -> str:
        return self.resolver.table(cls, pluralize)

    def column(self, cls: type, member: str) -> str:
        return self.resolver.column(cls, member)

    def describe(self, cls: type, pluralize: bool = False) -> EntityDescriptor:
        """Return the cached EntityDescriptor for cls."""
        key = (cls, pluralize)
        descriptor = self._descriptors.get(key)
        if descriptor is None:
            contract = self.resolver.contract(cls)
            descriptor = describe(cls, self.resolver, pluralize)
            with self._lock:
                if self.resolver.contract(cls) is not contract:
                    # Re-declared while describing; do not cache
                    return descriptor
                descriptors = dict(self._descriptors)
                descriptors[key] = descriptor
                self._descriptors = descriptors
        return descriptor

    # -------------------------------------------------------------------------
    # Mappers and accessors
    # -------------------------------------------------------------------------

    def register_mapper(self, cls: type[T], fn: Callable[[RowCursor], T]) -> None:
        """Register a row mapper for cls (replaces any previous one)."""
        with self._lock:
            mappers = dict(self._mappers)
            mappers[cls] = fn
            self._mappers = mappers

    def mapper(self, cls: type) -> RowMapperFn | None:
        return self._mappers.get(cls)

    def has_mapper(self, cls: type) -> bool:
        return cls in self._mappers

    def register_accessor(
        self,
        cls: type,
        columns: Sequence[str],
        extract: Callable[[Any], Sequence[Any]],
    ) -> Accessor:
        """Register an accessor used by build_insert/build_update for cls.

        Args:
            cls: Mapped type.
            columns: Column names in the order extract() returns values.
            extract: Function returning column values for an instance.
        """
        accessor = Accessor(tuple(columns), extract)
        with self._lock:
            accessors = dict(self._accessors)
            accessors[cls] = accessor
            self._accessors = accessors
        return accessor

    def accessor(self, cls: type) -> Accessor | None:
        return self._accessors.get(cls)


__all__ = ["Accessor", "MappingRegistry", "RowMapperFn"]
