# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Genro DbClient - typed query builder and row mapper over async SQL drivers.

A small database-access library with one API over SQL Server, PostgreSQL,
MySQL and SQLite:

- QueryBuilder compiles Python expressions into parameterized SQL
- RowMapper turns result rows into dataclasses, pydantic models or dicts
- DbClient executes statements through async adapters

Components:
    DbClient: Statement execution, connection context, query builders.
    DbClientConfig / config_from_env: Client configuration.
    NamedConnections / DbClientFactory: Multiple named databases.
    MappingRegistry: Naming contract, row mappers and accessors.
    QueryBuilder: Fluent SELECT/INSERT/UPDATE/DELETE builder.
    RowMapper: Row-to-object mapping.

Example:
    registry = MappingRegistry()

    @registry.entity(table="products", columns={"name": "product_name"})
    @dataclass
    class Product:
        id: int = 0
        name: str = ""
        price: Decimal = Decimal(0)

    client = DbClient(DbClientConfig("PostgreSQL", "postgresql://..."), registry)
    cheap = await client.query(Product).where(lambda p: p.price < 5).to_list()
"""

__version__ = "0.1.0"

from .client import DbClient
from .config import DbClientConfig, config_from_env
from .connections import ConnectionSpec, DbClientFactory, NamedConnections
from .cursor import MappingRowCursor, ProcedureResult, ResultSet, RowCursor, TupleRowCursor
from .errors import (
    DbClientError,
    InvalidIdentifierError,
    MissingPredicateError,
    UnknownConnectionError,
    UnknownConnectionOrMappingError,
    UnknownMappingError,
    UnorderedPagingError,
    UnsupportedExpressionError,
    UnsupportedOperationError,
)
from .mapper import RowMapper
from .sql import (
    EntityRef,
    MappingRegistry,
    Parameter,
    QueryBuilder,
    and_,
    get_dialect,
    not_,
    or_,
    validate_identifier,
)

__all__ = [
    "ConnectionSpec",
    "DbClient",
    "DbClientConfig",
    "DbClientError",
    "DbClientFactory",
    "EntityRef",
    "InvalidIdentifierError",
    "MappingRegistry",
    "MappingRowCursor",
    "MissingPredicateError",
    "NamedConnections",
    "Parameter",
    "ProcedureResult",
    "QueryBuilder",
    "ResultSet",
    "RowCursor",
    "RowMapper",
    "TupleRowCursor",
    "UnknownConnectionError",
    "UnknownConnectionOrMappingError",
    "UnknownMappingError",
    "UnorderedPagingError",
    "UnsupportedExpressionError",
    "UnsupportedOperationError",
    "and_",
    "config_from_env",
    "get_dialect",
    "not_",
    "or_",
    "validate_identifier",
]
