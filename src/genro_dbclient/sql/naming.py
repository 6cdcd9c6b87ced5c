# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Table and column name resolution driven by an explicit naming contract.

A NameResolver holds the declared overrides for each mapped type (table
name, per-member column names, identity member) and memoizes resolved
names for the lifetime of the resolver.

Resolution rules:
    table:  declared name, else the bare type name, optionally pluralized
    column: declared name for the member, else the bare member name

Pluralization never applies to columns.

Thread safety:
    Lookups read plain dicts without locking. Writers take a lock, copy the
    dict, update the copy and swap the reference, so a concurrent reader
    always sees either the old or the new mapping.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

DEFAULT_IDENTITY = "id"

_SIBILANT_SUFFIXES = ("s", "x", "z", "ch", "sh")
_VOWELS = frozenset("aeiouAEIOU")


def pluralize(name: str) -> str:
    """Return the English plural form of a type name.

    Rules:
        consonant + y -> ies   (Category -> Categories)
        s, x, z, ch, sh -> es  (Box -> Boxes)
        otherwise -> s         (Order -> Orders)
    """
    if not name:
        return name
    if len(name) > 1 and name[-1] in "yY" and name[-2] not in _VOWELS:
        return name[:-1] + "ies"
    if name.lower().endswith(_SIBILANT_SUFFIXES):
        return name + "es"
    return name + "s"


@dataclass(frozen=True)
class NamingContract:
    """Declared naming overrides for one mapped type."""

    table: str | None = None
    columns: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    identity: str | None = None


class NameResolver:
    """Resolve table and column names for mapped types.

    Usage:
        resolver = NameResolver()
        resolver.declare(Product, table="products", columns={"name": "product_name"})
        resolver.table(Product)                  # "products"
        resolver.column(Product, "name")         # "product_name"
        resolver.table(OrderLine, pluralize=True)  # "OrderLines"
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contracts: dict[type, NamingContract] = {}
        self._tables: dict[tuple[type, bool], str] = {}
        self._columns: dict[tuple[type, str], str] = {}

    # -------------------------------------------------------------------------
    # Contract declaration
    # -------------------------------------------------------------------------

    def declare(
        self,
        cls: type,
        table: str | None = None,
        columns: Mapping[str, str] | None = None,
        identity: str | None = None,
    ) -> NamingContract:
        """Declare naming overrides for a type (last declaration wins).

        Args:
            cls: Mapped type.
            table: Explicit table name. Used verbatim, never pluralized.
            columns: Mapping of member name to column name.
            identity: Member treated as identity/primary key.

        Returns:
            The stored NamingContract.
        """
        contract = NamingContract(
            table=table,
            columns=MappingProxyType(dict(columns or {})),
            identity=identity,
        )
        with self._lock:
            contracts = dict(self._contracts)
            contracts[cls] = contract
            self._contracts = contracts
            # Drop names memoized before this declaration
            self._tables = {k: v for k, v in self._tables.items() if k[0] is not cls}
            self._columns = {k: v for k, v in self._columns.items() if k[0] is not cls}
        return contract

    def contract(self, cls: type) -> NamingContract | None:
        """Return the declared contract for cls, or None."""
        return self._contracts.get(cls)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def table(self, cls: type, pluralize: bool = False) -> str:
        """Resolve the table name for cls."""
        key = (cls, pluralize)
        name = self._tables.get(key)
        if name is None:
            contract = self._contracts.get(cls)
            name = self._resolve_table(contract, cls, pluralize)
            self._remember("_tables", key, name, cls, contract)
        return name

    def column(self, cls: type, member: str) -> str:
        """Resolve the column name for a member of cls."""
        key = (cls, member)
        name = self._columns.get(key)
        if name is None:
            contract = self._contracts.get(cls)
            name = contract.columns.get(member, member) if contract else member
            self._remember("_columns", key, name, cls, contract)
        return name

    def identity(self, cls: type) -> str:
        """Return the member name treated as identity for cls."""
        contract = self._contracts.get(cls)
        if contract is not None and contract.identity:
            return contract.identity
        return DEFAULT_IDENTITY

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _resolve_table(self, contract: NamingContract | None, cls: type, plural: bool) -> str:
        if contract is not None and contract.table:
            return contract.table
        return pluralize(cls.__name__) if plural else cls.__name__

    def _remember(
        self, attr: str, key: Any, value: str, cls: type, contract: NamingContract | None
    ) -> None:
        with self._lock:
            # A declaration landed while resolving: the value may be stale
            if self._contracts.get(cls) is not contract:
                return
            cache = dict(getattr(self, attr))
            cache[key] = value
            setattr(self, attr, cache)


__all__ = ["DEFAULT_IDENTITY", "NameResolver", "NamingContract", "pluralize"]
