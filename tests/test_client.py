# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""End-to-end DbClient tests against SQLite (and PostgreSQL when available)."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from decimal import Decimal

import pytest
import pytest_asyncio

from genro_dbclient import DbClient, DbClientConfig, MappingRegistry
from genro_dbclient.cursor import ProcedureResult, ResultSet
from genro_dbclient.errors import InvalidIdentifierError, UnsupportedOperationError
from genro_dbclient.sql.adapters import SqliteAdapter
from genro_dbclient.sql.parameters import DbType, ParameterDirection


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


@dataclass
class PriceRow:
    product_name: str = ""
    price: float = 0.0


@pytest.fixture
def shop(shop_client: DbClient) -> DbClient:
    """Shop client with the products/categories naming contract."""
    shop_client.registry.entity(Product, table="products", columns={"name": "product_name"})
    shop_client.registry.entity(Category, table="categories", columns={"name": "category_name"})
    return shop_client


async def product_count(client: DbClient) -> int:
    return await client.execute_scalar("SELECT COUNT(*) FROM products")


class TestQueries:
    """Query builder execution."""

    async def test_to_list(self, shop):
        """Filtered, ordered rows map to entities."""
        rows = await (
            shop.query(Product).where(lambda p: p.price > 10).order_by(lambda p: p.name).to_list()
        )
        assert [p.name for p in rows] == ["50% off rake", "Hammer"]
        assert rows[1].price == Decimal("12.5")
        assert rows[1].category_id == 1

    async def test_escaped_wildcard(self, shop):
        """A literal % only matches rows containing it."""
        rows = await shop.query(Product).where(lambda p: p.name.contains("50%")).to_list()
        assert [p.name for p in rows] == ["50% off rake"]

    async def test_underscore_is_literal(self, shop):
        """_ is not a single-character wildcard after escaping."""
        rows = await shop.query(Product).where(lambda p: p.name.contains("H_mmer")).to_list()
        assert rows == []

    async def test_first_or_default(self, shop):
        """First match, or None when nothing matches."""
        first = await (
            shop.query(Product).where(lambda p: p.category_id == 1).order_by(lambda p: p.id)
        ).first_or_default()
        missing = await shop.query(Product).where(lambda p: p.id == 999).first_or_default()
        assert first.name == "Hammer"
        assert missing is None

    async def test_null_predicate(self, shop):
        """IS NULL finds rows without a category."""
        rows = await shop.query(Product).where(lambda p: p.category_id == None).to_list()  # noqa: E711
        assert [p.name for p in rows] == ["Orphan"]

    async def test_empty_in(self, shop):
        """An empty IN list matches nothing."""
        assert await shop.query(Product).where(lambda p: p.id.in_([])).to_list() == []

    async def test_in_list(self, shop):
        """IN binds every value."""
        rows = await (
            shop.query(Product).where(lambda p: p.id.in_([1, 3])).order_by(lambda p: p.id)
        ).to_list()
        assert [p.id for p in rows] == [1, 3]

    async def test_paging(self, shop):
        """skip/take page through ordered rows."""
        rows = await (
            shop.query(Product).order_by(lambda p: p.id).skip(1).take(2)
        ).to_list()
        assert [p.name for p in rows] == ["Wrench", "50% off rake"]

    async def test_skip_only(self, shop):
        """skip without take returns the remaining rows."""
        rows = await shop.query(Product).order_by(lambda p: p.id).skip(3).to_list()
        assert [p.name for p in rows] == ["Orphan"]

    async def test_inner_join_projection(self, shop):
        """Joined projections return dynamic rows from both tables."""
        rows = await (
            shop.query(Product)
            .join(Category, lambda p, c: p.category_id == c.id)
            .select_joined(Category, lambda p, c: (p.name, c.name))
            .order_by(lambda p: p.id)
            .to_dynamic_list()
        )
        assert rows == [
            {"product_name": "Hammer", "category_name": "Tools"},
            {"product_name": "Wrench", "category_name": "Tools"},
            {"product_name": "50% off rake", "category_name": "Garden"},
        ]

    async def test_left_join(self, shop):
        """LEFT JOIN keeps rows without a match."""
        row = await (
            shop.query(Product)
            .left_join(Category, lambda p, c: p.category_id == c.id)
            .select_joined(Category, lambda p, c: {"product": p.name, "category": c.name})
            .where(lambda p: p.name == "Orphan")
            .first_or_default_dynamic()
        )
        assert row == {"product": "Orphan", "category": None}

    async def test_joined_rows_map_to_main_entity(self, shop):
        """Default projection with a join still maps to the main entity."""
        rows = await (
            shop.query(Product)
            .join(Category, lambda p, c: (p.category_id == c.id) & (c.name == "Garden"))
            .to_list()
        )
        assert [p.name for p in rows] == ["50% off rake"]

    async def test_result_type(self, shop):
        """to_list() can map to another type by column name."""
        rows = await (
            shop.query(Product)
            .select(lambda p: (p.name, p.price))
            .where(lambda p: p.id == 2)
            .to_list(PriceRow)
        )
        assert rows == [PriceRow("Wrench", 8.0)]


class TestCommands:
    """INSERT/UPDATE/DELETE and raw statements."""

    async def test_insert_returns_identity(self, shop):
        """insert() returns the generated id."""
        new_id = await shop.insert(Product(id=0, name="Saw", price=Decimal("15.25"), category_id=1))
        assert new_id == 5
        saw = await shop.query(Product).where(lambda p: p.id == new_id).first_or_default()
        assert saw.name == "Saw"
        assert saw.price == Decimal("15.25")

    async def test_insert_row_count(self, shop):
        """Without identity retrieval insert() returns the row count."""
        assert await shop.insert(Product(name="Drill"), return_identity=False) == 1
        assert await product_count(shop) == 5

    async def test_update(self, shop):
        """build_update() output runs as a command."""
        sql, params = (
            shop.query(Product)
            .where(lambda p: p.id == 2)
            .build_update(Product(id=2, name="Big wrench", price=Decimal("9.5"), category_id=1))
        )
        assert await shop.execute_command(sql, params) == 1
        row = await shop.execute_query_first_row(
            Product,
            "SELECT * FROM products WHERE id = @p0",
            [shop.get_parameter("p0", 2)],
        )
        assert (row.name, row.price) == ("Big wrench", Decimal("9.5"))

    async def test_delete(self, shop):
        """build_delete() output removes matching rows."""
        sql, params = shop.query(Product).where(lambda p: p.category_id == 1).build_delete()
        assert await shop.execute_command(sql, params) == 2
        assert await product_count(shop) == 2

    async def test_raw_queries(self, shop):
        """Raw SQL with @pN parameters through every execute_* method."""
        param = [shop.get_parameter("@p0", 1)]
        categories = await shop.execute_query(
            Category, "SELECT id, category_name FROM categories ORDER BY id"
        )
        assert [c.name for c in categories] == ["Tools", "Garden"]
        dynamic = await shop.execute_query_dynamic(
            "SELECT id FROM products WHERE category_id = @p0 ORDER BY id", param
        )
        assert dynamic == [{"id": 1}, {"id": 2}]
        first = await shop.execute_query_first_row_dynamic(
            "SELECT category_name FROM categories WHERE id = @p0", param
        )
        assert first == {"category_name": "Tools"}
        assert await shop.execute_query_first_row(Category, "SELECT * FROM categories WHERE id = 0") is None

    async def test_placeholder_text_in_literal(self, shop):
        """@pN inside a string literal is data, not a parameter."""
        value = await shop.execute_scalar(
            "SELECT 'mail@p1.com' || @p0", [shop.get_parameter("p0", "!")]
        )
        assert value == "mail@p1.com!"


class ProcedureAdapter(SqliteAdapter):
    """SQLite connections with canned stored procedure results."""

    supports_procedures = True

    def __init__(self, db_path: str, outcome: ProcedureResult):
        super().__init__(db_path)
        self.outcome = outcome
        self.calls: list[tuple] = []

    async def call_procedure(self, conn, name, params, returns_rows=False):
        self.calls.append((conn, name, list(params), returns_rows))
        return self.outcome


@pytest_asyncio.fixture
async def proc_client(tmp_path) -> AsyncGenerator[DbClient, None]:
    """Client whose adapter answers every procedure call with the same outcome."""
    db_path = str(tmp_path / "proc.db")
    outcome = ProcedureResult(
        ResultSet(["id", "category_name"], [(1, "Tools"), (2, "Garden")]),
        {"p_status": "Inserted"},
        2,
    )
    client = DbClient(DbClientConfig("sqlite", db_path), adapter=ProcedureAdapter(db_path, outcome))
    client.registry.entity(Category, table="categories", columns={"name": "category_name"})
    yield client
    await client.shutdown()


class TestStoredProcedures:
    """Stored procedure calls through the adapter hook."""

    async def test_with_output(self, proc_client):
        """Output parameters come back as a dict keyed by bare name."""
        params = [
            proc_client.get_parameter("p_name", "Jaded"),
            proc_client.get_parameter(
                "p_status", None, DbType.STRING, ParameterDirection.OUTPUT, 250
            ),
        ]
        outputs = await proc_client.execute_stored_procedure_with_output("add_data", params)
        assert outputs == {"p_status": "Inserted"}
        [(_, name, sent, returns_rows)] = proc_client.adapter.calls
        assert name == "add_data"
        assert [(p.name, p.direction, p.size) for p in sent] == [
            ("@p_name", ParameterDirection.INPUT, 0),
            ("@p_status", ParameterDirection.OUTPUT, 250),
        ]
        assert returns_rows is False

    async def test_row_count(self, proc_client):
        """execute_stored_procedure returns the affected row count."""
        assert await proc_client.execute_stored_procedure("dbo.touch_rows") == 2
        assert proc_client.adapter.calls[0][2] == []

    async def test_select_data_maps_rows(self, proc_client):
        """Rows from a row-returning procedure map through the naming contract."""
        rows = await proc_client.execute_stored_procedure_select_data(
            Category, "get_categories", {"p_limit": 2}
        )
        assert [(c.id, c.name) for c in rows] == [(1, "Tools"), (2, "Garden")]
        [(_, _, sent, returns_rows)] = proc_client.adapter.calls
        assert [(p.name, p.value, p.direction) for p in sent] == [
            ("@p_limit", 2, ParameterDirection.INPUT)
        ]
        assert returns_rows is True

    @pytest.mark.parametrize("name", ["add_data; DROP TABLE x", "*", "", "proc()", "a..b"])
    async def test_invalid_procedure_name(self, proc_client, name):
        """Procedure names are validated before any connection is opened."""
        with pytest.raises(InvalidIdentifierError):
            await proc_client.execute_stored_procedure(name)
        assert proc_client.adapter.calls == []

    async def test_invalid_parameter_name(self, proc_client):
        """Parameter names must be single words."""
        with pytest.raises(InvalidIdentifierError):
            await proc_client.execute_stored_procedure(
                "add_data", [proc_client.get_parameter("p name", 1)]
            )
        assert proc_client.adapter.calls == []

    async def test_uses_task_connection(self, proc_client):
        """Inside connection() the call runs on the task's connection."""
        async with proc_client.connection():
            await proc_client.execute_stored_procedure("add_data")
            assert proc_client.adapter.calls[0][0] is proc_client.conn

    async def test_logged(self, proc_client, caplog):
        """The procedure name is logged when SQL logging is enabled."""
        proc_client.config.log_executed_query = True
        with caplog.at_level(logging.INFO, logger="genro_dbclient.client"):
            await proc_client.execute_stored_procedure("add_data")
        assert "Calling procedure: add_data" in caplog.text

    async def test_sqlite_has_no_procedures(self, shop):
        """SQLite raises UnsupportedOperationError (a NotImplementedError)."""
        with pytest.raises(UnsupportedOperationError):
            await shop.execute_stored_procedure_with_output("add_data", {"p_name": "x"})
        with pytest.raises(NotImplementedError):
            await shop.execute_stored_procedure("add_data")


class TestTransactions:
    """Connection context and transaction control."""

    async def test_commit(self, shop):
        """Statements inside connection() commit together."""
        async with shop.connection():
            await shop.insert(Product(name="A"))
            await shop.insert(Product(name="B"))
        assert await product_count(shop) == 6

    async def test_rollback_on_error(self, shop):
        """An exception inside connection() rolls everything back."""
        with pytest.raises(RuntimeError, match="boom"):
            async with shop.connection():
                await shop.insert(Product(name="A"))
                assert await product_count(shop) == 5
                raise RuntimeError("boom")
        assert await product_count(shop) == 4

    async def test_conn_outside_context(self, shop):
        """conn is only available inside connection()."""
        with pytest.raises(RuntimeError, match="No active connection"):
            shop.conn
        async with shop.connection():
            assert shop.conn is not None

    async def test_clients_do_not_share_connections(self, shop):
        """Each client tracks its own task connection."""
        other = DbClient(DbClientConfig("sqlite", ":memory:"))
        async with shop.connection():
            with pytest.raises(RuntimeError):
                other.conn


class TestLogging:
    """Query and timing logs."""

    async def test_log_executed_query(self, shop, caplog):
        """SQL text is logged at INFO when enabled."""
        shop.config.log_executed_query = True
        with caplog.at_level(logging.INFO, logger="genro_dbclient.client"):
            await product_count(shop)
        assert "Executing SQL: SELECT COUNT(*) FROM products" in caplog.text

    async def test_timing_log(self, shop, caplog):
        """Elapsed time and row count are logged at DEBUG when enabled."""
        shop.config.enable_logging = True
        with caplog.at_level(logging.DEBUG, logger="genro_dbclient.client"):
            await shop.query(Product).to_list()
        assert "Statement completed in" in caplog.text
        assert "(4 rows)" in caplog.text

    async def test_silent_by_default(self, shop, caplog):
        """Nothing is logged with the default configuration."""
        with caplog.at_level(logging.DEBUG, logger="genro_dbclient.client"):
            await product_count(shop)
        assert "Executing SQL" not in caplog.text
        assert "Statement completed" not in caplog.text


class TestConfiguration:
    """Client construction."""

    def test_defaults(self):
        """Default client is in-memory SQLite."""
        client = DbClient()
        assert client.dialect.name == "sqlite"
        assert client.adapter.db_path == ":memory:"

    def test_from_env(self, monkeypatch, tmp_path):
        """from_env() reads GENRO_DBCLIENT_* variables."""
        monkeypatch.setenv("GENRO_DBCLIENT_TYPE", "Sqlite")
        monkeypatch.setenv("GENRO_DBCLIENT_CONNECTION", str(tmp_path / "env.db"))
        monkeypatch.setenv("GENRO_DBCLIENT_PLURALIZE", "true")
        registry = MappingRegistry()
        client = DbClient.from_env(registry)
        assert client.registry is registry
        assert client.config.pluralize_table_names is True
        sql, _ = client.query(Category).build_select()
        assert sql == "SELECT id, name FROM Categories"


PG_SCHEMA = """
DROP TABLE IF EXISTS products;
CREATE TABLE products (
    id SERIAL PRIMARY KEY,
    product_name TEXT,
    price NUMERIC(10, 2),
    category_id INTEGER
);
"""


@pytest.mark.postgres
class TestPostgres:
    """Same operations against PostgreSQL."""

    async def test_roundtrip(self, pg_url):
        """Insert with RETURNING, ILIKE search, paging and rollback."""
        pytest.importorskip("psycopg")
        registry = MappingRegistry()
        registry.entity(Product, table="products", columns={"name": "product_name"})
        client = DbClient(DbClientConfig("PostgreSQL", pg_url), registry)
        try:
            await client.execute_script(PG_SCHEMA)
            first = await client.insert(Product(name="Widget", price=Decimal("9.90")))
            await client.insert(Product(name="50% gadget", price=Decimal("5.00")))
            assert first == 1

            rows = await client.query(Product).where(lambda p: p.name.contains("WID")).to_list()
            assert [(p.name, p.price) for p in rows] == [("Widget", Decimal("9.90"))]

            rows = await client.query(Product).where(lambda p: p.name.startswith("50%")).to_list()
            assert [p.name for p in rows] == ["50% gadget"]

            page = await client.query(Product).order_by(lambda p: p.id).skip(1).to_list()
            assert [p.id for p in page] == [2]

            with pytest.raises(RuntimeError):
                async with client.connection():
                    await client.insert(Product(name="temp"))
                    raise RuntimeError("rollback")
            assert await client.execute_scalar("SELECT COUNT(*) FROM products") == 2
        finally:
            await client.execute_script("DROP TABLE IF EXISTS products;")
            await client.shutdown()

    async def test_stored_procedures(self, pg_url):
        """CALL with an INOUT argument and SELECT from a set-returning function."""
        pytest.importorskip("psycopg")
        client = DbClient(DbClientConfig("PostgreSQL", pg_url))
        try:
            await client.execute_script(
                """
                CREATE TABLE IF NOT EXISTS tags (id SERIAL PRIMARY KEY, name TEXT);
                CREATE OR REPLACE PROCEDURE add_tag(IN p_name TEXT, INOUT p_status TEXT)
                LANGUAGE plpgsql AS $$
                BEGIN
                    INSERT INTO tags (name) VALUES (p_name);
                    p_status := 'Inserted';
                END;
                $$;
                CREATE OR REPLACE FUNCTION list_tags(p_limit INT)
                RETURNS TABLE(id INT, name TEXT) LANGUAGE sql AS $$
                    SELECT id, name FROM tags ORDER BY id LIMIT p_limit
                $$;
                """
            )
            outputs = await client.execute_stored_procedure_with_output(
                "add_tag",
                [
                    client.get_parameter("p_name", "red"),
                    client.get_parameter(
                        "p_status", "", DbType.STRING, ParameterDirection.INPUT_OUTPUT
                    ),
                ],
            )
            assert outputs == {"p_status": "Inserted"}

            rows = await client.execute_stored_procedure_select_data(
                Category, "list_tags", {"p_limit": 5}
            )
            assert [(c.id, c.name) for c in rows] == [(1, "red")]
        finally:
            await client.execute_script(
                "DROP FUNCTION IF EXISTS list_tags(INT); "
                "DROP PROCEDURE IF EXISTS add_tag(TEXT, TEXT); "
                "DROP TABLE IF EXISTS tags;"
            )
            await client.shutdown()
