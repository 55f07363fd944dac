"""Tests for app factory."""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from mysqlly_rest import create_app, ConnectionRegistry
from mysqlly_rest._models import ConnectionConfig
from mysqlly_rest._stores import MemoryConfigStore, MemorySecretStore


def test_create_app():
    registry = ConnectionRegistry()
    app = create_app(registry)

    client = TestClient(app)

    # Health check should work at /api/v1 prefix
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_app_with_cors():
    registry = ConnectionRegistry()
    app = create_app(registry, cors_origins=["http://localhost:3000"])

    # CORS headers should be present
    client = TestClient(app)
    response = client.options(
        "/api/v1/health",
        headers={"Origin": "http://localhost:3000"},
    )
    assert "access-control-allow-origin" in response.headers


def test_routes_are_versioned(client):
    assert client.get("/health").status_code == 404
    assert client.get("/api/v1/connections").status_code == 200


@pytest.mark.anyio
async def test_full_workflow(registry, server):
    """Add a connection, browse down to table rows, delete it."""
    app = create_app(registry, page_size=20)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        # Add connection
        response = await client.post(
            "/api/v1/connections",
            json={"name": "Local", "host": "localhost", "port": "3306", "user": "root", "password": "pw"},
        )
        assert response.status_code == 200
        connection_id = response.json()["data"]["id"]
        base = f"/api/v1/connections/{connection_id}"

        response = await client.get(f"{base}/databases")
        assert [db["name"] for db in response.json()["data"]["databases"]] == ["shop", "analytics"]

        response = await client.get(f"{base}/databases/shop/tables")
        assert [t["name"] for t in response.json()["data"]["tables"]] == ["users", "orders"]

        response = await client.get(f"{base}/databases/shop/tables/users/columns")
        assert [c["type"] for c in response.json()["data"]["columns"]] == ["int", "varchar(255)", "json"]

        response = await client.get(f"{base}/databases/shop/tables/users/rows?page=1")
        data = response.json()["data"]
        assert data["pageSize"] == 20
        assert data["totalPages"] == 3
        assert data["rows"][0]["id"] == {"kind": "number", "value": 20}

        # Delete connection
        response = await client.delete(base)
        assert response.status_code == 200
        assert response.json() == {"status": "success", "data": None}

        response = await client.get(f"{base}/databases")
        assert response.status_code == 404

    # One probe plus one cached connection, both closed by now.
    assert server.connect_calls == 2
    assert all(conn.closed for conn in server.connections)


def test_version_matches_pyproject():
    """Version in __init__ should come from pyproject.toml via metadata."""
    from importlib.metadata import version
    import mysqlly_rest

    assert mysqlly_rest.__version__ == version("mysqlly-rest")


def test_lifespan_loads_and_closes(server):
    """Startup restores persisted configs; shutdown closes live connections."""
    config = ConnectionConfig(id="c1", name="Saved", host="localhost", port=3306, user="root")
    secret_store = MemorySecretStore()
    secret_store.set_password("c1", "pw")
    registry = ConnectionRegistry(
        config_store=MemoryConfigStore([config]),
        secret_store=secret_store,
        connector=server.connect,
    )
    app = create_app(registry)

    with TestClient(app) as client:
        response = client.get("/api/v1/connections")
        assert [c["id"] for c in response.json()["data"]["connections"]] == ["c1"]

        response = client.get("/api/v1/connections/c1/databases")
        assert response.status_code == 200
        assert not server.connections[0].closed

    assert server.connections[0].closed
