# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for name resolution, pluralization and entity descriptors."""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import ClassVar, Optional

import pytest
from pydantic import BaseModel

from genro_dbclient.errors import UnknownMappingError
from genro_dbclient.sql.entity import ValueKind, value_kind
from genro_dbclient.sql.naming import NameResolver, pluralize
from genro_dbclient.sql.registry import MappingRegistry


@dataclass
class Order:
    id: int = 0
    customer_id: int = 0
    total: Decimal = Decimal(0)


@dataclass
class Category:
    id: int = 0
    name: str = ""


@dataclass
class Box:
    id: int = 0


class Ledger:
    id: int
    memo: str | None = None
    _cache: dict
    kind: ClassVar[str] = "ledger"


class Customer(BaseModel):
    id: int = 0
    email: str
    nickname: Optional[str] = None


class TestPluralize:
    """Tests for pluralize()."""

    @pytest.mark.parametrize(
        ("singular", "plural"),
        [
            ("Order", "Orders"),
            ("Category", "Categories"),
            ("Box", "Boxes"),
            ("Library", "Libraries"),
            ("Status", "Statuses"),
            ("Match", "Matches"),
            ("Wish", "Wishes"),
            ("Quiz", "Quizes"),
            ("Day", "Days"),
            ("Key", "Keys"),
        ],
    )
    def test_rules(self, singular, plural):
        """Suffix rules: s, ies after consonant+y, es after sibilants."""
        assert pluralize(singular) == plural

    def test_empty(self):
        """Empty name stays empty."""
        assert pluralize("") == ""


class TestNameResolver:
    """Tests for NameResolver."""

    def test_table_defaults_to_type_name(self):
        """Undeclared type resolves to its bare name."""
        assert NameResolver().table(Order) == "Order"

    def test_table_pluralized(self):
        """pluralize=True applies the plural rules."""
        resolver = NameResolver()
        assert resolver.table(Order, pluralize=True) == "Orders"
        assert resolver.table(Category, pluralize=True) == "Categories"
        assert resolver.table(Box, pluralize=True) == "Boxes"

    def test_declared_table_wins_over_pluralize(self):
        """A declared table name is used verbatim."""
        resolver = NameResolver()
        resolver.declare(Order, table="tbl_order")
        assert resolver.table(Order, pluralize=True) == "tbl_order"
        assert resolver.table(Order) == "tbl_order"

    def test_column_override(self):
        """Declared column overrides apply, others use the member name."""
        resolver = NameResolver()
        resolver.declare(Category, columns={"name": "category_name"})
        assert resolver.column(Category, "name") == "category_name"
        assert resolver.column(Category, "id") == "id"

    def test_columns_never_pluralized(self):
        """Column names are never pluralized."""
        resolver = NameResolver()
        resolver.table(Order, pluralize=True)
        assert resolver.column(Order, "total") == "total"

    def test_declare_after_resolution_replaces_memo(self):
        """Declaring a contract discards names memoized for that type."""
        resolver = NameResolver()
        assert resolver.table(Box) == "Box"
        resolver.declare(Box, table="boxes")
        assert resolver.table(Box) == "boxes"

    def test_identity_default_and_declared(self):
        """Identity defaults to 'id' and follows the declared member."""
        resolver = NameResolver()
        assert resolver.identity(Order) == "id"
        resolver.declare(Order, identity="customer_id")
        assert resolver.identity(Order) == "customer_id"


class TestRegistryEntity:
    """Tests for MappingRegistry.entity() and describe()."""

    def test_decorator_form(self):
        """entity() used as a decorator returns the class unchanged."""
        registry = MappingRegistry()

        @registry.entity(table="tags", columns={"label": "tag_label"})
        @dataclass
        class Tag:
            id: int = 0
            label: str = ""

        assert isinstance(Tag, type)
        assert registry.table(Tag) == "tags"
        assert registry.column(Tag, "label") == "tag_label"

    def test_describe_dataclass(self):
        """Dataclass fields become ordered column descriptors."""
        registry = MappingRegistry()
        registry.entity(Order, table="orders", columns={"customer_id": "customer_id"})
        desc = registry.describe(Order)
        assert desc.table == "orders"
        assert [c.member for c in desc.columns] == ["id", "customer_id", "total"]
        assert desc.member("total").kind is ValueKind.DECIMAL
        assert desc.identity_column == "id"

    def test_describe_is_cached(self):
        """Repeated describe() returns the same descriptor object."""
        registry = MappingRegistry()
        assert registry.describe(Order) is registry.describe(Order)

    def test_describe_plain_class_skips_private_and_classvar(self):
        """Annotated classes skip _private members and ClassVars."""
        desc = MappingRegistry().describe(Ledger)
        assert [c.member for c in desc.columns] == ["id", "memo"]
        assert desc.member("memo").nullable is True

    def test_describe_pydantic(self):
        """Pydantic model fields are described in declaration order."""
        desc = MappingRegistry().describe(Customer)
        assert [c.member for c in desc.columns] == ["id", "email", "nickname"]
        assert desc.is_pydantic is True
        assert desc.member("email").has_default is False
        assert desc.member("nickname").nullable is True

    def test_unknown_member_raises(self):
        """Looking up an undeclared member raises UnknownMappingError."""
        desc = MappingRegistry().describe(Order)
        with pytest.raises(UnknownMappingError):
            desc.member("nope")

    def test_class_without_members_raises(self):
        """A class with neither annotations nor constructor arguments has no mapping."""

        class Empty:
            pass

        with pytest.raises(UnknownMappingError):
            MappingRegistry().describe(Empty)

    def test_constructor_arguments_become_members(self):
        """Without class annotations, __init__ arguments are the members."""

        class Reading:
            def __init__(self, sensor: str, value: float = 0.0, *args, **kwargs):
                self.sensor = sensor
                self.value = value

        desc = MappingRegistry().describe(Reading)
        assert [(c.member, c.has_default) for c in desc.columns] == [
            ("sensor", False),
            ("value", True),
        ]

    def test_redeclare_drops_cached_descriptor(self):
        """Re-declaring a type rebuilds its descriptor."""
        registry = MappingRegistry()
        first = registry.describe(Box)
        registry.entity(Box, table="boxes")
        second = registry.describe(Box)
        assert first.table == "Box"
        assert second.table == "boxes"


class TestValueKind:
    """Tests for annotation classification."""

    @pytest.mark.parametrize(
        ("annotation", "kind", "nullable"),
        [
            (int, ValueKind.INTEGER, False),
            (bool, ValueKind.BOOLEAN, False),
            (float, ValueKind.FLOAT, False),
            (Decimal, ValueKind.DECIMAL, False),
            (str, ValueKind.STRING, True),
            (bytes, ValueKind.BYTES, True),
            (datetime.datetime, ValueKind.DATETIME, True),
            (datetime.date, ValueKind.DATE, True),
            (uuid.UUID, ValueKind.UUID, False),
            (int | None, ValueKind.INTEGER, True),
            (Optional[bool], ValueKind.BOOLEAN, True),
            (int | str, ValueKind.OBJECT, True),
            (list, ValueKind.OBJECT, True),
        ],
    )
    def test_classification(self, annotation, kind, nullable):
        """Annotations map to (kind, nullable)."""
        assert value_kind(annotation) == (kind, nullable)

    def test_field_default_factory_counts_as_default(self):
        """default_factory fields are reported as having a default."""

        @dataclass
        class Basket:
            id: int
            items: list = field(default_factory=list)

        desc = MappingRegistry().describe(Basket)
        assert desc.member("id").has_default is False
        assert desc.member("items").has_default is True
