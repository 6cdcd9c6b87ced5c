# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Allow-list validation for caller-supplied SQL identifiers.

Free-text column names (raw ``select("...")`` lists, legacy string
``order_by``) are checked against a small grammar before they are pasted
into SQL:

- a single ``*``
- one or more dot-separated parts, each being a word (``\\w+``) or a
  word-and-space sequence wrapped in ``[]``, backticks or double quotes

Anything else (separators, comments, quotes, extra tokens) is rejected.

Stored procedure names (dotted words, no quoting) and procedure
parameter names (single words) follow stricter patterns.
"""

from __future__ import annotations

import re

from ..errors import InvalidIdentifierError

_PART = r'(?:\[[\w\s]+\]|`[\w\s]+`|"[\w\s]+"|\w+)'
IDENTIFIER_RE = re.compile(rf"^(?:\*|{_PART}(?:\.{_PART})*)$")
ROUTINE_RE = re.compile(r"\w+(?:\.\w+)*")
PARAMETER_RE = re.compile(r"\w+")


def is_valid_identifier(raw: str | None) -> bool:
    """Return True if raw is an acceptable SQL identifier."""
    if raw is None or not raw.strip():
        return False
    return IDENTIFIER_RE.fullmatch(raw) is not None


def validate_routine_name(raw: str | None) -> str:
    """Validate a stored procedure name: dotted words only, no ``*``."""
    if raw is None or not ROUTINE_RE.fullmatch(raw):
        raise InvalidIdentifierError(raw or "", "stored procedure name")
    return raw


def validate_parameter_name(raw: str) -> str:
    """Validate a procedure parameter name (``name`` or ``@name``) and return it bare."""
    bare = raw.lstrip("@")
    if not PARAMETER_RE.fullmatch(bare):
        raise InvalidIdentifierError(raw, "parameter name")
    return bare


def validate_identifier(raw: str | None) -> str:
    """Validate raw identifier text and return it unchanged.

    Args:
        raw: Column or table reference as supplied by the caller.

    Returns:
        The same string, for fluent use.

    Raises:
        InvalidIdentifierError: If the string is empty or does not match
            the identifier grammar.
    """
    if raw is None or not raw.strip():
        raise InvalidIdentifierError(raw or "", "empty identifier")
    if IDENTIFIER_RE.fullmatch(raw) is None:
        raise InvalidIdentifierError(raw)
    return raw


__all__ = [
    "IDENTIFIER_RE",
    "is_valid_identifier",
    "validate_identifier",
    "validate_parameter_name",
    "validate_routine_name",
]
