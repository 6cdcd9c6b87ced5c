# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Named connections and the client factory.

Applications talking to more than one database register each connection
under a name and ask the factory for the matching client::

    connections = NamedConnections()
    connections.add("main", "PostgreSQL", "postgresql://app@db/app", default=True)
    connections.add("Reporting", "MySql", "mysql://report@dw/stats")

    factory = DbClientFactory(connections, registry)
    main = factory.get()              # default connection
    reports = factory.get("reporting")  # names are case-insensitive

Environment form (see NamedConnections.from_env)::

    GENRO_DBCLIENT_CONNECTION_MAIN=PostgreSQL|postgresql://app@db/app
    GENRO_DBCLIENT_CONNECTION_REPORTING=MySql|mysql://report@dw/stats
    GENRO_DBCLIENT_DEFAULT_CONNECTION=main
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from .client import DbClient
from .config import ENV_PREFIX, DbClientConfig
from .errors import UnknownConnectionError
from .sql.registry import MappingRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True)
class ConnectionSpec:
    name: str
    database_type: str
    connection_string: str


class NamedConnections:
    """Case-insensitive registry of named connections (last write wins)."""

    def __init__(self) -> None:
        self._specs: dict[str, ConnectionSpec] = {}
        self.default_name: str | None = None

    def add(
        self,
        name: str,
        database_type: str,
        connection_string: str,
        default: bool = False,
    ) -> ConnectionSpec:
        """Register (or replace) a named connection.

        Raises:
            ValueError: If name, database_type or connection_string is empty.
        """
        for label, value in (
            ("name", name),
            ("database_type", database_type),
            ("connection_string", connection_string),
        ):
            if not value or not value.strip():
                raise ValueError(f"Connection {label} must not be empty")
        spec = ConnectionSpec(name.strip(), database_type.strip(), connection_string)
        self._specs[spec.name.lower()] = spec
        if default:
            self.default_name = spec.name
        return spec

    def set_default(self, name: str) -> None:
        """Set the default connection (must already be registered)."""
        self.get(name)
        self.default_name = name

    def get(self, name: str | None = None) -> ConnectionSpec:
        """Return the spec for name (or the default).

        Raises:
            UnknownConnectionError: If the name (or default) is not registered.
        """
        if name is None:
            if self.default_name is None:
                raise UnknownConnectionError(
                    f"No default connection configured. Available: {self._available()}"
                )
            name = self.default_name
        try:
            return self._specs[name.strip().lower()]
        except KeyError:
            raise UnknownConnectionError(
                f"Connection '{name}' is not registered. Available: {self._available()}"
            ) from None

    def names(self) -> list[str]:
        return [spec.name for spec in self._specs.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._specs

    def __iter__(self) -> Iterator[ConnectionSpec]:
        return iter(list(self._specs.values()))

    def __len__(self) -> int:
        return len(self._specs)

    def _available(self) -> str:
        return ", ".join(self.names()) or "(none)"

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> NamedConnections:
        """Load connections from ``<prefix>CONNECTION_<NAME>=<type>|<string>``.

        ``<prefix>DEFAULT_CONNECTION`` selects the default; with a single
        connection and no explicit default, that connection is the default.

        Raises:
            ValueError: If a variable does not have the ``type|string`` form.
        """
        connections = cls()
        marker = f"{prefix}CONNECTION_"
        for key, value in sorted(os.environ.items()):
            if not key.startswith(marker):
                continue
            database_type, sep, connection_string = value.partition("|")
            if not sep:
                raise ValueError(f"{key} must have the form '<type>|<connection string>'")
            connections.add(key[len(marker):].lower(), database_type, connection_string)
        default = os.environ.get(f"{prefix}DEFAULT_CONNECTION")
        if default:
            connections.set_default(default)
        elif len(connections) == 1:
            connections.default_name = connections.names()[0]
        return connections


class DbClientFactory:
    """Create and cache one DbClient per named connection.

    Args:
        connections: Registered named connections.
        registry: MappingRegistry shared by every client.
        config: Template for the non-connection settings (logging,
            pluralization); database type and string come from the spec.
    """

    def __init__(
        self,
        connections: NamedConnections,
        registry: MappingRegistry | None = None,
        config: DbClientConfig | None = None,
    ):
        self.connections = connections
        self.registry = registry or MappingRegistry()
        self.config = config or DbClientConfig()
        self._clients: dict[str, DbClient] = {}

    def get(self, name: str | None = None) -> DbClient:
        """Return the client for name (default connection when None).

        Raises:
            UnknownConnectionError: If the name is not registered.
        """
        spec = self.connections.get(name)
        key = spec.name.lower()
        client = self._clients.get(key)
        if client is None or client.config.connection_string != spec.connection_string:
            config = replace(
                self.config,
                database_type=spec.database_type,
                connection_string=spec.connection_string,
            )
            client = DbClient(config, self.registry)
            self._clients[key] = client
        return client

    async def shutdown(self) -> None:
        """Shut down every client created by this factory."""
        for client in self._clients.values():
            await client.shutdown()
        self._clients.clear()


__all__ = ["ConnectionSpec", "DbClientFactory", "NamedConnections"]
