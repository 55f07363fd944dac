"""Connection management routes."""

from fastapi import APIRouter, Depends

from .._connections import ConnectionRegistry
from .._models import (
    AddConnectionRequest,
    ConnectionCreatedResponse,
    ConnectionsResponse,
    success_envelope,
)
from ._dependencies import get_registry

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("")
async def list_connections(
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict:
    """List registered connections (passwords are never returned)."""
    return success_envelope(ConnectionsResponse(connections=registry.list_configs()))


@router.post("")
async def add_connection(
    body: AddConnectionRequest,
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict:
    """Test the credentials and register a connection."""
    connection_id = await registry.add_connection(
        body.name,
        body.host,
        body.port,
        body.user,
        body.password,
    )
    return success_envelope(ConnectionCreatedResponse(id=connection_id))


@router.get("/{connection_id}")
async def get_connection(
    connection_id: str,
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict:
    """Get a single connection config."""
    return success_envelope(registry.get_config(connection_id))


@router.delete("/{connection_id}")
async def delete_connection(
    connection_id: str,
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict:
    """Delete a connection and its stored password. Unknown ids succeed."""
    await registry.remove_connection(connection_id)
    return success_envelope(None)
