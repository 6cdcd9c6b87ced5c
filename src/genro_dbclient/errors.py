# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for genro-dbclient.

All errors raised by the builder, compiler, mapper registry and connection
factory derive from DbClientError. Each concrete class also inherits from
the closest built-in exception so that callers catching ValueError or
LookupError keep working.

Errors are raised synchronously at the call that introduced the invalid
state (or at the terminal build_* call when the check needs the whole
query), never after SQL has reached a driver.
"""

from __future__ import annotations


class DbClientError(Exception):
    """Base class for all genro-dbclient errors."""


class InvalidIdentifierError(DbClientError, ValueError):
    """Raw identifier text does not match the allowed grammar."""

    def __init__(self, identifier: str, reason: str | None = None):
        self.identifier = identifier
        message = f"Invalid SQL identifier: {identifier!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UnsupportedExpressionError(DbClientError, TypeError):
    """Expression tree contains a shape the SQL compiler cannot lower."""


class MissingPredicateError(DbClientError):
    """UPDATE or DELETE requested without a WHERE predicate."""


class UnorderedPagingError(DbClientError):
    """Paging requested without ORDER BY on a dialect that requires one."""


class UnsupportedOperationError(DbClientError, NotImplementedError):
    """The backend has no counterpart for the requested operation."""


class UnknownConnectionOrMappingError(DbClientError, LookupError):
    """Lookup of a name or type that was required to be registered."""


class UnknownConnectionError(UnknownConnectionOrMappingError):
    """Named connection (or database type) is not registered."""


class UnknownMappingError(UnknownConnectionOrMappingError):
    """Entity type or member has no mapping."""


__all__ = [
    "DbClientError",
    "InvalidIdentifierError",
    "MissingPredicateError",
    "UnknownConnectionError",
    "UnknownConnectionOrMappingError",
    "UnknownMappingError",
    "UnorderedPagingError",
    "UnsupportedExpressionError",
    "UnsupportedOperationError",
]
