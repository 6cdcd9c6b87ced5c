# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Client configuration dataclass and environment loader.

Usage:
    # From environment (Docker/production):
    config = config_from_env()
    client = DbClient(config)

    # Explicit configuration:
    config = DbClientConfig(
        database_type="PostgreSQL",
        connection_string="postgresql://app:secret@db/app",
        pluralize_table_names=True,
    )

Configuration via environment variables:
    GENRO_DBCLIENT_TYPE: Database type (Sqlite, PostgreSQL, MySql, MsSql)
    GENRO_DBCLIENT_CONNECTION: Connection string for the driver
    GENRO_DBCLIENT_PLURALIZE: Pluralize undeclared table names
    GENRO_DBCLIENT_LOGGING: Log execution timing and row counts
    GENRO_DBCLIENT_LOG_QUERIES: Log SQL text before execution
"""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_PREFIX = "GENRO_DBCLIENT_"

_TRUE_VALUES = ("1", "true", "yes")


@dataclass
class DbClientConfig:
    """Configuration for one DbClient.

    Attributes:
        database_type: Backend type name, case-insensitive.
        connection_string: Driver connection string (path, URL or ODBC string).
        pluralize_table_names: Pluralize type names without a declared table.
        enable_logging: Log elapsed time and row counts at DEBUG.
        log_executed_query: Log SQL text at INFO before execution.
    """

    database_type: str = "sqlite"
    connection_string: str = ":memory:"
    pluralize_table_names: bool = False
    enable_logging: bool = False
    log_executed_query: bool = False


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean environment variable ("1", "true", "yes" are true)."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def config_from_env(prefix: str = ENV_PREFIX) -> DbClientConfig:
    """Build DbClientConfig from GENRO_DBCLIENT_* environment variables.

    Environment variables:
        GENRO_DBCLIENT_TYPE: Database type (default: "sqlite")
        GENRO_DBCLIENT_CONNECTION: Connection string (default: ":memory:")
        GENRO_DBCLIENT_PLURALIZE: Pluralize table names (default: false)
        GENRO_DBCLIENT_LOGGING: Enable timing logs (default: false)
        GENRO_DBCLIENT_LOG_QUERIES: Log executed SQL (default: false)

    Returns:
        DbClientConfig instance populated from environment.
    """
    return DbClientConfig(
        database_type=os.environ.get(f"{prefix}TYPE", "sqlite"),
        connection_string=os.environ.get(f"{prefix}CONNECTION", ":memory:"),
        pluralize_table_names=env_flag(f"{prefix}PLURALIZE"),
        enable_logging=env_flag(f"{prefix}LOGGING"),
        log_executed_query=env_flag(f"{prefix}LOG_QUERIES"),
    )


__all__ = ["DbClientConfig", "ENV_PREFIX", "config_from_env", "env_flag"]
