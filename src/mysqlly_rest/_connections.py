"""Connection registry for MySQL connection configs and their live connections."""

from __future__ import annotations

import asyncio
import logging
import math
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.exc import DBAPIError

from ._errors import (
    ConfigNotFoundError,
    ConfigValidationError,
    ConnectionFailedError,
    CredentialStoreError,
    RegistryError,
)
from ._models import ColumnInfo, ConnectionConfig, DatabaseInfo, TableInfo, TableRows, to_cell
from ._mysql import (
    SHOW_DATABASES,
    SHOW_TABLES,
    SYSTEM_SCHEMAS,
    Connector,
    LiveConnection,
    count_rows,
    describe_table,
    driver_message,
    open_mysql_connection,
    select_page,
    use_database,
)
from ._stores import ConfigStore, MemoryConfigStore, MemorySecretStore, SecretStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25


def _new_connection_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _first_value(row: dict[str, Any], preferred: str | None = None) -> str:
    if preferred is not None:
        for key in (preferred, preferred.lower()):
            if key in row:
                return _text(row[key])
    return _text(next(iter(row.values()), None))


class ConnectionRegistry:
    """Registry of MySQL connection configs, their passwords and live connections.

    Configs go to ``config_store`` with a blank password, passwords go to
    ``secret_store``. At most one live connection is kept per config id; it is
    opened on first use and reused until the config is removed or
    :meth:`close_all` runs.

    Args:
        config_store: Plain store for configs (in-memory by default)
        secret_store: Store for passwords (in-memory by default)
        connector: Coroutine function opening a live connection for a config
    """

    def __init__(
        self,
        config_store: ConfigStore | None = None,
        secret_store: SecretStore | None = None,
        connector: Connector | None = None,
    ):
        self._config_store = config_store if config_store is not None else MemoryConfigStore()
        self._secret_store = secret_store if secret_store is not None else MemorySecretStore()
        self._connector = connector or open_mysql_connection
        self._configs: dict[str, ConnectionConfig] = {}
        self._connections: dict[str, LiveConnection] = {}
        self._pending: dict[str, asyncio.Future[LiveConnection]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # === Configs ===

    async def load(self) -> None:
        """Load persisted configs and merge in their stored passwords.

        A config whose password is missing is kept with an empty password;
        connecting with it fails later as a connection error.
        """
        configs: dict[str, ConnectionConfig] = {}
        for config in self._config_store.load():
            password = self._secret_store.get_password(config.id)
            if password is None:
                logger.warning("No stored password for connection %s (%s)", config.id, config.name)
                password = ""
            configs[config.id] = config.with_password(password)
        self._configs = configs
        logger.info("Loaded %d connection(s)", len(configs))

    def list_configs(self) -> list[ConnectionConfig]:
        """List registered configs, passwords blanked."""
        return [config.without_password() for config in self._configs.values()]

    def get_config(self, connection_id: str) -> ConnectionConfig:
        """Get one registered config, password blanked."""
        return self._require_config(connection_id).without_password()

    def has_connection(self, connection_id: str) -> bool:
        """Check if a connection id is registered."""
        return connection_id in self._configs

    async def add_connection(
        self,
        name: str,
        host: str,
        port: int | str,
        user: str,
        password: str,
    ) -> str:
        """Validate, probe and persist a new connection.

        Nothing is persisted unless a probe connection with the given
        credentials succeeds.

        Returns:
            The new connection id

        Raises:
            ConfigValidationError: If a parameter is malformed
            ConnectionFailedError: If the probe connection fails
        """
        connection_id = _new_connection_id()
        while connection_id in self._configs:
            connection_id = _new_connection_id()
        config = _build_config(connection_id, name, host, port, user, password)

        await self._probe(config)

        previous = list(self._configs.values())
        self._config_store.save([*previous, config])
        try:
            self._secret_store.set_password(connection_id, password)
        except CredentialStoreError:
            self._config_store.save(previous)
            raise

        self._configs[connection_id] = config
        logger.info("Added connection %s (%s)", connection_id, config.description)
        return connection_id

    async def remove_connection(self, connection_id: str) -> None:
        """Close, forget and delete a connection. Unknown ids are ignored."""
        config = self._configs.pop(connection_id, None)
        live = self._connections.pop(connection_id, None)
        lock = self._locks.pop(connection_id, None)
        if live is not None:
            # Let a statement already running on the connection finish first.
            if lock is not None:
                async with lock:
                    await self._close_quietly(connection_id, live)
            else:
                await self._close_quietly(connection_id, live)

        if config is None:
            return
        self._config_store.save(list(self._configs.values()))
        self._secret_store.delete_password(connection_id)
        logger.info("Removed connection %s", connection_id)

    # === Live connections ===

    async def get_connection(self, connection_id: str) -> LiveConnection:
        """Return the cached live connection, opening it on first use.

        Concurrent callers for the same id share a single connect attempt.

        Raises:
            ConfigNotFoundError: If the id is not registered
            ConnectionFailedError: If connecting fails
        """
        live = self._connections.get(connection_id)
        if live is not None:
            return live

        pending = self._pending.get(connection_id)
        if pending is None:
            config = self._require_config(connection_id)
            pending = asyncio.ensure_future(self._open(config))
            pending.add_done_callback(_consume_exception)
            self._pending[connection_id] = pending
        # Shielded so one cancelled caller does not cancel the shared attempt.
        return await asyncio.shield(pending)

    async def close_all(self) -> None:
        """Close every live connection. Called once on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending.values(), return_exceptions=True)
        connections = list(self._connections.items())
        self._connections.clear()
        self._locks.clear()
        for connection_id, live in connections:
            await self._close_quietly(connection_id, live)

    # === Introspection ===

    async def get_databases(self, connection_id: str) -> list[DatabaseInfo]:
        """List user databases; system schemas are never included."""
        async with self._session(connection_id) as live:
            result = await live.execute(SHOW_DATABASES)
        names = [_first_value(row, "Database") for row in result.rows]
        return [
            DatabaseInfo(name=name, connection_id=connection_id)
            for name in names
            if name.lower() not in SYSTEM_SCHEMAS
        ]

    async def get_tables(self, connection_id: str, database_name: str) -> list[TableInfo]:
        """List the tables of a database."""
        async with self._session(connection_id, database_name) as live:
            result = await live.execute(SHOW_TABLES)
        return [
            TableInfo(
                name=_first_value(row),
                database_name=database_name,
                connection_id=connection_id,
            )
            for row in result.rows
        ]

    async def get_columns(
        self,
        connection_id: str,
        database_name: str,
        table_name: str,
    ) -> list[ColumnInfo]:
        """Describe the columns of a table."""
        async with self._session(connection_id, database_name) as live:
            result = await live.execute(describe_table(table_name))
        return [
            ColumnInfo(
                name=_text(row.get("Field")),
                type=_text(row.get("Type")),
                nullable=_text(row.get("Null")),
                key=_text(row.get("Key")),
                default=None if row.get("Default") is None else _text(row["Default"]),
                extra=_text(row.get("Extra")),
            )
            for row in result.rows
        ]

    async def get_table_rows(
        self,
        connection_id: str,
        database_name: str,
        table_name: str,
        page: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> TableRows:
        """Fetch one zero-based page of a table.

        Out-of-range pages, including negative ones, return no rows.
        """
        if page_size < 1:
            raise ConfigValidationError(f"Page size must be at least 1, got {page_size}")

        async with self._session(connection_id, database_name) as live:
            count = await live.execute(count_rows(table_name))
            if page < 0:
                # MySQL rejects a negative OFFSET; LIMIT 0 still reports the columns.
                data = await live.execute(select_page(table_name, 0, 0))
            else:
                data = await live.execute(select_page(table_name, page_size, page * page_size))

        total_rows = int(count.rows[0].get("total") or 0) if count.rows else 0
        return TableRows(
            rows=[{column: to_cell(value) for column, value in row.items()} for row in data.rows],
            column_names=data.columns,
            total_rows=total_rows,
            total_pages=math.ceil(total_rows / page_size),
            page=page,
            page_size=page_size,
        )

    # === Internals ===

    def _require_config(self, connection_id: str) -> ConnectionConfig:
        config = self._configs.get(connection_id)
        if config is None:
            raise ConfigNotFoundError(connection_id)
        return config

    async def _probe(self, config: ConnectionConfig) -> None:
        try:
            probe = await self._connector(config)
        except Exception as exc:
            message = driver_message(exc)
            logger.warning("Probe connection to %s failed: %s", config.description, message)
            raise ConnectionFailedError(message) from exc
        await self._close_quietly(config.id, probe)

    async def _open(self, config: ConnectionConfig) -> LiveConnection:
        try:
            try:
                live = await self._connector(config)
            except Exception as exc:
                raise ConnectionFailedError(driver_message(exc)) from exc
            if config.id not in self._configs:
                # Removed while the connect was in flight.
                await self._close_quietly(config.id, live)
                raise ConfigNotFoundError(config.id)
            self._connections[config.id] = live
            logger.info("Opened connection %s (%s)", config.id, config.description)
            return live
        finally:
            self._pending.pop(config.id, None)

    @asynccontextmanager
    async def _session(
        self,
        connection_id: str,
        database_name: str | None = None,
    ) -> AsyncIterator[LiveConnection]:
        """Hold the connection exclusively, with ``database_name`` selected.

        The selected database is session state on a shared connection, so the
        ``USE`` and the statements depending on it run under one lock.
        """
        live = await self.get_connection(connection_id)
        lock = self._locks.setdefault(connection_id, asyncio.Lock())
        async with lock:
            if connection_id not in self._configs:
                # Removed while this request waited for the connection.
                raise ConfigNotFoundError(connection_id)
            try:
                if database_name is not None:
                    await live.execute(use_database(database_name))
                yield live
            except RegistryError:
                raise
            except Exception as exc:
                if isinstance(exc, DBAPIError) and exc.connection_invalidated:
                    await self._evict(connection_id, live)
                raise ConnectionFailedError(driver_message(exc)) from exc

    async def _evict(self, connection_id: str, live: LiveConnection) -> None:
        if self._connections.get(connection_id) is live:
            del self._connections[connection_id]
            logger.warning("Dropped broken connection %s; next request reconnects", connection_id)
            await self._close_quietly(connection_id, live)

    async def _close_quietly(self, connection_id: str, live: LiveConnection) -> None:
        try:
            await live.close()
        except Exception:
            logger.warning("Error closing connection %s", connection_id, exc_info=True)


def _consume_exception(future: asyncio.Future) -> None:
    # Callers may all be gone by the time a shared connect attempt fails.
    if not future.cancelled():
        future.exception()


def _build_config(
    connection_id: str,
    name: str,
    host: str,
    port: int | str,
    user: str,
    password: str,
) -> ConnectionConfig:
    name = (name or "").strip()
    host = (host or "").strip()
    user = (user or "").strip()
    if not name:
        raise ConfigValidationError("Connection name is required")
    if not host:
        raise ConfigValidationError("Host is required")
    if not user:
        raise ConfigValidationError("Username is required")
    if password is None:
        raise ConfigValidationError("Password must be a string (may be empty)")

    if isinstance(port, bool):
        raise ConfigValidationError("Please enter a valid port number (1-65535)")
    if isinstance(port, str):
        # isdigit() accepts superscripts and other digits int() rejects.
        if not (port.strip().isascii() and port.strip().isdigit()):
            raise ConfigValidationError("Please enter a valid port number (1-65535)")
        port = int(port)
    if not isinstance(port, int) or not 1 <= port <= 65535:
        raise ConfigValidationError("Please enter a valid port number (1-65535)")

    return ConnectionConfig(
        id=connection_id,
        name=name,
        host=host,
        port=port,
        user=user,
        password=password,
    )
