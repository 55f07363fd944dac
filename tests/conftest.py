"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from mysqlly_rest import create_app, ConnectionRegistry
from mysqlly_rest._models import ConnectionConfig
from mysqlly_rest._mysql import QueryResult
from mysqlly_rest._stores import MemoryConfigStore, MemorySecretStore

PASSWORD = "pw"

_IDENT = r"`((?:[^`]|``)+)`"


def _unquote(quoted: str) -> str:
    return quoted.replace("``", "`")


def mysql_error(code: int, message: str) -> OperationalError:
    """An error shaped like the ones SQLAlchemy raises for the MySQL driver."""
    return OperationalError("statement", None, Exception(code, message))


@dataclass
class FakeTable:
    """Rows of a table plus the rows ``DESCRIBE`` reports for it."""

    rows: list[dict] = field(default_factory=list)
    describe: list[dict] = field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        if self.describe:
            return [col["Field"] for col in self.describe]
        return list(self.rows[0]) if self.rows else []


class FakeConnection:
    """A scripted MySQL session answering the statements the registry issues."""

    def __init__(self, server: FakeServer):
        self.server = server
        self.database: str | None = None
        self.closed = False
        self.statements: list[str] = []

    async def execute(self, statement: str) -> QueryResult:
        if self.closed:
            raise mysql_error(2013, "Lost connection to MySQL server during query")
        self.statements.append(statement)
        self.server.statements.append(statement)
        if self.server.query_delay:
            await asyncio.sleep(self.server.query_delay)
        if self.server.query_error is not None:
            raise self.server.query_error

        if statement == "SHOW DATABASES":
            names = ["information_schema", "mysql", "performance_schema", "sys", *self.server.databases]
            return QueryResult(columns=["Database"], rows=[{"Database": n} for n in names])

        if match := re.fullmatch(rf"USE {_IDENT}", statement):
            name = _unquote(match.group(1))
            if name not in self.server.databases:
                raise mysql_error(1049, f"Unknown database '{name}'")
            self.database = name
            return QueryResult()

        if statement == "SHOW TABLES":
            tables = self._tables()
            column = f"Tables_in_{self.database}"
            return QueryResult(columns=[column], rows=[{column: t} for t in tables])

        if match := re.fullmatch(rf"DESCRIBE {_IDENT}", statement):
            table = self._table(_unquote(match.group(1)))
            columns = ["Field", "Type", "Null", "Key", "Default", "Extra"]
            return QueryResult(columns=columns, rows=[dict(row) for row in table.describe])

        if match := re.fullmatch(rf"SELECT COUNT\(\*\) AS total FROM {_IDENT}", statement):
            table = self._table(_unquote(match.group(1)))
            return QueryResult(columns=["total"], rows=[{"total": len(table.rows)}])

        if match := re.fullmatch(rf"SELECT \* FROM {_IDENT} LIMIT (\d+) OFFSET (\d+)", statement):
            table = self._table(_unquote(match.group(1)))
            limit, offset = int(match.group(2)), int(match.group(3))
            rows = [dict(row) for row in table.rows[offset:offset + limit]]
            return QueryResult(columns=table.column_names, rows=rows)

        raise mysql_error(1064, f"You have an error in your SQL syntax near '{statement}'")

    async def close(self) -> None:
        self.closed = True
        if self.server.close_error is not None:
            raise self.server.close_error

    def _tables(self) -> dict[str, FakeTable]:
        if self.database is None:
            raise mysql_error(1046, "No database selected")
        return self.server.databases[self.database]

    def _table(self, name: str) -> FakeTable:
        tables = self._tables()
        if name not in tables:
            raise mysql_error(1146, f"Table '{self.database}.{name}' doesn't exist")
        return tables[name]


class FakeServer:
    """Stands in for a MySQL server; ``connect`` is the registry's connector."""

    def __init__(self, databases: dict[str, dict[str, FakeTable]] | None = None):
        self.databases = databases if databases is not None else {}
        self.password = PASSWORD
        self.connect_calls = 0
        self.connect_delay = 0.0
        self.connect_error: Exception | None = None
        self.query_delay = 0.0
        self.query_error: Exception | None = None
        self.close_error: Exception | None = None
        self.connections: list[FakeConnection] = []
        self.statements: list[str] = []

    async def connect(self, config: ConnectionConfig) -> FakeConnection:
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        if config.password != self.password:
            raise mysql_error(
                1045,
                f"Access denied for user '{config.user}'@'{config.host}' (using password: YES)",
            )
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


def sample_databases() -> dict[str, dict[str, FakeTable]]:
    users = FakeTable(
        rows=[
            {"id": i, "email": f"user{i}@example.com", "profile": '{"plan": "pro"}' if i % 2 else None}
            for i in range(60)
        ],
        describe=[
            {"Field": "id", "Type": "int", "Null": "NO", "Key": "PRI", "Default": None, "Extra": "auto_increment"},
            {"Field": "email", "Type": b"varchar(255)", "Null": "NO", "Key": "UNI", "Default": None, "Extra": ""},
            {"Field": "profile", "Type": "json", "Null": "YES", "Key": "", "Default": None, "Extra": ""},
        ],
    )
    orders = FakeTable(
        rows=[{"id": 1, "total": 10}],
        describe=[
            {"Field": "id", "Type": "int", "Null": "NO", "Key": "PRI", "Default": None, "Extra": ""},
            {"Field": "total", "Type": "int", "Null": "YES", "Key": "", "Default": "0", "Extra": ""},
        ],
    )
    return {
        "shop": {"users": users, "orders": orders},
        "analytics": {"events": FakeTable()},
    }


@pytest.fixture
def server() -> FakeServer:
    """A fake MySQL server with a couple of databases."""
    return FakeServer(sample_databases())


@pytest.fixture
def config_store() -> MemoryConfigStore:
    return MemoryConfigStore()


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def registry(
    server: FakeServer,
    config_store: MemoryConfigStore,
    secret_store: MemorySecretStore,
) -> ConnectionRegistry:
    """Create a fresh connection registry talking to the fake server."""
    return ConnectionRegistry(
        config_store=config_store,
        secret_store=secret_store,
        connector=server.connect,
    )


@pytest.fixture
def app(registry: ConnectionRegistry):
    """Create a test app with fresh registry."""
    return create_app(registry)


@pytest.fixture
def client(app) -> TestClient:
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def anyio_backend() -> str:
    """The registry is built on asyncio primitives; run async tests on asyncio."""
    return "asyncio"
