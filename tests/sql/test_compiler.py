# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for predicate lowering."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest

from genro_dbclient.errors import InvalidIdentifierError, UnsupportedExpressionError
from genro_dbclient.sql.compiler import (
    PredicateCompiler,
    compile_predicate,
    projection_columns,
    render_projection,
)
from genro_dbclient.sql.dialects import get_dialect
from genro_dbclient.sql.expressions import JOINED, MAIN, EntityRef, Value
from genro_dbclient.sql.naming import NameResolver
from genro_dbclient.sql.parameters import DbType, ParamCollector


@dataclass
class Product:
    id: int = 0
    name: str = ""
    price: Decimal = Decimal(0)
    category_id: int | None = None


@dataclass
class Category:
    id: int = 0
    name: str = ""


@pytest.fixture
def resolver() -> NameResolver:
    """Resolver with the products/categories naming contract."""
    res = NameResolver()
    res.declare(Product, table="products", columns={"name": "product_name"})
    res.declare(Category, table="categories", columns={"name": "category_name"})
    return res


p = EntityRef(Product)
c = EntityRef(Category, JOINED)


def compile_on(resolver, node, dialect="sqlite", **kwargs):
    return compile_predicate(node, resolver, get_dialect(dialect), **kwargs)


class TestComparisonLowering:
    """Comparisons, null checks and logical operators."""

    def test_simple_comparison(self, resolver):
        """Member vs literal binds one parameter."""
        sql, params = compile_on(resolver, p.price > 100)
        assert sql == "(price > @p0)"
        assert [(x.name, x.value) for x in params] == [("@p0", 100)]
        assert params[0].db_type is DbType.INT64

    def test_column_override_applied(self, resolver):
        """Declared column names replace member names."""
        sql, _ = compile_on(resolver, p.name == "Hammer")
        assert sql == "(product_name = @p0)"

    def test_reflected_literal(self, resolver):
        """A literal on the left still compiles member first."""
        sql, _ = compile_on(resolver, 5 < p.price)
        assert sql == "(price > @p0)"

    def test_is_null(self, resolver):
        """Comparison with None lowers to IS NULL without parameters."""
        sql, params = compile_on(resolver, p.category_id == None)  # noqa: E711
        assert sql == "(category_id IS NULL)"
        assert params == []

    def test_is_not_null(self, resolver):
        """Inequality with None lowers to IS NOT NULL."""
        sql, params = compile_on(resolver, p.category_id.is_not_null())
        assert sql == "(category_id IS NOT NULL)"
        assert params == []

    def test_null_on_left(self, resolver):
        """None on the left side is handled too."""
        sql, _ = compile_on(resolver, Value(None) == p.category_id)
        assert sql == "(category_id IS NULL)"

    def test_and_or_not(self, resolver):
        """Logical operators are fully parenthesized, numbering left to right."""
        node = ((p.price > 1) & (p.price < 5)) | ~(p.name == "x")
        sql, params = compile_on(resolver, node)
        assert sql == (
            "(((price > @p0) AND (price < @p1)) OR NOT ((product_name = @p2)))"
        )
        assert [x.value for x in params] == [1, 5, "x"]

    def test_qualified(self, resolver):
        """qualify=True prefixes the table identifier."""
        sql, _ = compile_on(resolver, p.price > 1, qualify=True)
        assert sql == "(products.price > @p0)"

    def test_qualifiers_by_source(self, resolver):
        """Join conditions use the qualifier of each member source."""
        node = p.category_id == c.id
        sql, params = compile_on(
            resolver,
            node,
            qualifiers={MAIN: "products", JOINED: "categories"},
            qualify=True,
        )
        assert sql == "(products.category_id = categories.id)"
        assert params == []


class TestStringMatch:
    """LIKE lowering and wildcard escaping."""

    def test_contains_with_percent(self, resolver):
        """% in the value is escaped and ESCAPE is appended."""
        sql, params = compile_on(resolver, p.name.contains("50%off"))
        assert sql == "product_name LIKE @p0 ESCAPE '~'"
        assert params[0].value == "%50~%off%"

    def test_startswith_underscore(self, resolver):
        """_ is escaped for prefix matches."""
        sql, params = compile_on(resolver, p.name.startswith("prod_uct"))
        assert sql == "product_name LIKE @p0 ESCAPE '~'"
        assert params[0].value == "prod~_uct%"

    def test_endswith_bracket_sql_server(self, resolver):
        """SQL Server also escapes [."""
        sql, params = compile_on(resolver, p.name.endswith("[special]"), dialect="MsSql")
        assert sql == "product_name LIKE @p0 ESCAPE '~'"
        assert params[0].value == "%~[special]"

    def test_bracket_not_escaped_elsewhere(self, resolver):
        """[ is an ordinary character outside SQL Server."""
        sql, params = compile_on(resolver, p.name.endswith("[special]"))
        assert sql == "product_name LIKE @p0"
        assert params[0].value == "%[special]"

    def test_plain_value_has_no_escape_clause(self, resolver):
        """Values without metacharacters omit ESCAPE."""
        sql, params = compile_on(resolver, p.name.contains("Widget"))
        assert sql == "product_name LIKE @p0"
        assert params[0].value == "%Widget%"

    def test_escape_char_escaped_when_escaping(self, resolver):
        """The escape character itself is doubled once escaping happens."""
        _, params = compile_on(resolver, p.name.contains("a~b%"))
        assert params[0].value == "%a~~b~%%"

    def test_postgres_uses_ilike(self, resolver):
        """PostgreSQL matches case-insensitively."""
        sql, _ = compile_on(resolver, p.name.startswith("wid"), dialect="PostgreSQL")
        assert sql == "product_name ILIKE @p0"

    def test_non_string_value_rejected(self, resolver):
        """String matching requires a str value."""
        with pytest.raises(UnsupportedExpressionError):
            compile_on(resolver, p.name.contains(5))


class TestInList:
    """Membership lowering."""

    def test_in_list(self, resolver):
        """One placeholder per value, in order."""
        sql, params = compile_on(resolver, p.category_id.in_([1, 2, 3]))
        assert sql == "category_id IN (@p0, @p1, @p2)"
        assert [x.value for x in params] == [1, 2, 3]

    def test_empty_in_list(self, resolver):
        """An empty collection lowers to a false predicate."""
        sql, params = compile_on(resolver, p.category_id.in_([]))
        assert sql == "1=0"
        assert params == []

    def test_negated_in_list(self, resolver):
        """NOT wraps the IN list."""
        sql, _ = compile_on(resolver, ~p.category_id.in_((7,)))
        assert sql == "NOT (category_id IN (@p0))"


class TestUnsupported:
    """Shapes the compiler refuses."""

    def test_arithmetic_operand(self, resolver):
        """Arithmetic inside a comparison is rejected."""
        with pytest.raises(UnsupportedExpressionError):
            compile_on(resolver, p.price * 2 > 10)

    def test_bare_member(self, resolver):
        """A member alone is not a predicate."""
        with pytest.raises(UnsupportedExpressionError):
            compile_on(resolver, p.price)

    def test_bare_value(self, resolver):
        """A value alone is not a predicate."""
        with pytest.raises(UnsupportedExpressionError):
            compile_on(resolver, Value(True))


class TestSharedCollector:
    """Numbering continues across fragments of one statement."""

    def test_numbering_continues(self, resolver):
        """A second compile on the same collector starts after the first."""
        params = ParamCollector()
        compiler = PredicateCompiler(resolver, get_dialect("sqlite"), params)
        first = compiler.compile(p.price > 1)
        second = compiler.compile(p.name == "x")
        assert (first, second) == ("(price > @p0)", "(product_name = @p1)")
        assert len(params) == 2

    def test_custom_factory(self, resolver):
        """The parameter factory receives name, value and inferred type."""
        calls = []

        def factory(name, value, db_type):
            calls.append((name, value, db_type))
            return ("param", name)

        params = ParamCollector(factory)
        PredicateCompiler(resolver, get_dialect("sqlite"), params).compile(p.price > 2.5)
        assert calls == [("@p0", 2.5, DbType.DOUBLE)]
        assert params.parameters == [("param", "@p0")]


class TestProjection:
    """Projection normalization and rendering."""

    def _render(self, resolver, result, has_joins=False, always_qualify=False):
        compiler = PredicateCompiler(
            resolver,
            get_dialect("sqlite"),
            ParamCollector(),
            {MAIN: "products", JOINED: "categories"},
        )
        return render_projection(
            projection_columns(result, always_qualify), compiler, has_joins
        )

    def test_single_member(self, resolver):
        """A single member renders its column."""
        assert self._render(resolver, p.name) == "product_name"

    def test_tuple(self, resolver):
        """A tuple renders columns in order."""
        assert self._render(resolver, (p.id, p.name)) == "id, product_name"

    def test_qualified_when_joined(self, resolver):
        """Columns are qualified when the query has joins."""
        assert self._render(resolver, (p.name, c.name), has_joins=True) == (
            "products.product_name, categories.category_name"
        )

    def test_always_qualify(self, resolver):
        """always_qualify forces qualification without joins."""
        assert self._render(resolver, [p.id], always_qualify=True) == "products.id"

    def test_dict_aliases(self, resolver):
        """Dict keys become output aliases."""
        assert self._render(resolver, {"title": p.name, "cost": p.price}) == (
            "product_name AS title, price AS cost"
        )

    def test_invalid_alias(self, resolver):
        """Aliases must be valid identifiers."""
        with pytest.raises(InvalidIdentifierError):
            projection_columns({"bad alias;": p.name})

    @pytest.mark.parametrize("result", [5, (), (p.name, "x"), {"a": 1}])
    def test_rejected_shapes(self, result):
        """Only members may be projected."""
        with pytest.raises(UnsupportedExpressionError):
            projection_columns(result)
