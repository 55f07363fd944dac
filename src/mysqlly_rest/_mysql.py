"""Live MySQL connections and the statements issued over them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from sqlalchemy import URL
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from ._errors import ConfigValidationError
from ._models import ConnectionConfig

DRIVER = "mysql+aiomysql"

SYSTEM_SCHEMAS = frozenset({"information_schema", "mysql", "performance_schema", "sys"})


@dataclass(frozen=True)
class QueryResult:
    """Column names and rows (column name -> value) of one statement."""

    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)


@runtime_checkable
class LiveConnection(Protocol):
    """An open session to a MySQL server."""

    async def execute(self, statement: str) -> QueryResult:
        """Run a statement and return its (possibly empty) result."""
        ...

    async def close(self) -> None:
        """Close the session."""
        ...


Connector = Callable[[ConnectionConfig], Awaitable[LiveConnection]]


def mysql_url(config: ConnectionConfig) -> URL:
    """Build the SQLAlchemy URL for a config (no database selected)."""
    return URL.create(
        DRIVER,
        username=config.user,
        password=config.password or None,
        host=config.host,
        port=config.port,
    )


def driver_message(exc: BaseException) -> str:
    """Return the driver's own error text.

    SQLAlchemy wraps DBAPI errors; the MySQL driver stores ``(code, message)``
    in the original exception's args.
    """
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        args = getattr(exc.orig, "args", ())
        if len(args) >= 2 and isinstance(args[1], str):
            return args[1]
        return str(exc.orig) or type(exc.orig).__name__
    return str(exc) or type(exc).__name__


class MySQLConnection:
    """A single physical MySQL session driven through SQLAlchemy's asyncio API."""

    def __init__(self, engine: AsyncEngine, connection: AsyncConnection):
        self._engine = engine
        self._connection = connection

    @classmethod
    async def open(cls, config: ConnectionConfig) -> MySQLConnection:
        # NullPool: closing the connection closes the socket, nothing lingers.
        # AUTOCOMMIT: no snapshot transaction pinning what later reads see.
        engine = create_async_engine(
            mysql_url(config),
            poolclass=NullPool,
            isolation_level="AUTOCOMMIT",
        )
        try:
            connection = await engine.connect()
        except BaseException:
            await engine.dispose()
            raise
        return cls(engine, connection)

    async def execute(self, statement: str) -> QueryResult:
        result = await self._connection.exec_driver_sql(
            statement,
            execution_options={"no_parameters": True},
        )
        if not result.returns_rows:
            return QueryResult()
        columns = list(result.keys())
        rows = [dict(row) for row in result.mappings()]
        return QueryResult(columns=columns, rows=rows)

    async def close(self) -> None:
        try:
            await self._connection.close()
        finally:
            await self._engine.dispose()


async def open_mysql_connection(config: ConnectionConfig) -> LiveConnection:
    """Default connector used by the registry."""
    return await MySQLConnection.open(config)


# === Statements ===


SHOW_DATABASES = "SHOW DATABASES"
SHOW_TABLES = "SHOW TABLES"


def quote_identifier(name: str) -> str:
    """Backtick-quote a database or table name for interpolation."""
    if not name:
        raise ConfigValidationError("Identifier must not be empty")
    if "\x00" in name:
        raise ConfigValidationError("Identifier must not contain NUL characters")
    return "`" + name.replace("`", "``") + "`"


def use_database(database: str) -> str:
    return f"USE {quote_identifier(database)}"


def describe_table(table: str) -> str:
    return f"DESCRIBE {quote_identifier(table)}"


def count_rows(table: str) -> str:
    return f"SELECT COUNT(*) AS total FROM {quote_identifier(table)}"


def select_page(table: str, limit: int, offset: int) -> str:
    return f"SELECT * FROM {quote_identifier(table)} LIMIT {int(limit)} OFFSET {int(offset)}"
