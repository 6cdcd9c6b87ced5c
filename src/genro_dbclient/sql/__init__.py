# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQL generation layer: naming, expressions, compiler, dialects, query builder.

Everything in this package except ``adapters`` is synchronous and pure:
building SQL never performs I/O.

Components:
    validate_identifier: Allow-list check for raw column text.
    NameResolver / MappingRegistry: Naming contract, descriptors, accessors.
    EntityRef, Member, and_/or_/not_: Expression tree construction.
    PredicateCompiler: Lowers expressions to SQL with @pN placeholders.
    Dialect and subclasses: Per-backend paging, LIKE and identity syntax.
    QueryBuilder: Fluent builder producing (sql, parameters).
"""

from .compiler import PredicateCompiler, compile_predicate
from .dialects import (
    Dialect,
    MySqlDialect,
    PostgresDialect,
    SqliteDialect,
    SqlServerDialect,
    get_dialect,
)
from .entity import ColumnDescriptor, EntityDescriptor, ValueKind
from .expressions import (
    JOINED,
    MAIN,
    EntityRef,
    Member,
    Node,
    Value,
    and_,
    not_,
    or_,
)
from .identifiers import is_valid_identifier, validate_identifier
from .naming import NameResolver, pluralize
from .parameters import DbType, Parameter, ParameterDirection
from .query import ColumnSelector, JoinKind, QueryBuilder
from .registry import Accessor, MappingRegistry

__all__ = [
    "Accessor",
    "ColumnDescriptor",
    "ColumnSelector",
    "DbType",
    "Dialect",
    "EntityDescriptor",
    "EntityRef",
    "JOINED",
    "JoinKind",
    "MAIN",
    "MappingRegistry",
    "Member",
    "MySqlDialect",
    "NameResolver",
    "Node",
    "Parameter",
    "ParameterDirection",
    "PostgresDialect",
    "PredicateCompiler",
    "QueryBuilder",
    "SqlServerDialect",
    "SqliteDialect",
    "Value",
    "ValueKind",
    "and_",
    "compile_predicate",
    "get_dialect",
    "is_valid_identifier",
    "not_",
    "or_",
    "pluralize",
    "validate_identifier",
]
