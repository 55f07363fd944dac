"""Schema and table browsing routes.

Each request reports its own failure: the response carries an empty result
next to the error, so one failing branch does not abort its siblings.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .._connections import ConnectionRegistry
from .._errors import RegistryError, error_body
from .._models import (
    ColumnsResponse,
    ConnectionOverview,
    DatabasesResponse,
    ErrorDetail,
    OverviewResponse,
    TablesResponse,
    success_envelope,
)
from ._dependencies import get_page_size, get_registry

router = APIRouter(tags=["browse"])


def _failed(exc: RegistryError, empty: dict) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_type, exc.message, data=empty),
    )


@router.get("/connections/{connection_id}/databases", response_model=None)
async def list_databases(
    connection_id: str,
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict | JSONResponse:
    """List the user databases of a connection."""
    try:
        databases = await registry.get_databases(connection_id)
    except RegistryError as exc:
        return _failed(exc, {"databases": []})
    return success_envelope(DatabasesResponse(databases=databases))


@router.get("/connections/{connection_id}/databases/{database_name}/tables", response_model=None)
async def list_tables(
    connection_id: str,
    database_name: str,
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict | JSONResponse:
    """List the tables of a database."""
    try:
        tables = await registry.get_tables(connection_id, database_name)
    except RegistryError as exc:
        return _failed(exc, {"tables": []})
    return success_envelope(TablesResponse(tables=tables))


@router.get(
    "/connections/{connection_id}/databases/{database_name}/tables/{table_name}/columns",
    response_model=None,
)
async def list_columns(
    connection_id: str,
    database_name: str,
    table_name: str,
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict | JSONResponse:
    """Describe the columns of a table."""
    try:
        columns = await registry.get_columns(connection_id, database_name, table_name)
    except RegistryError as exc:
        return _failed(exc, {"columns": []})
    return success_envelope(ColumnsResponse(columns=columns))


@router.get(
    "/connections/{connection_id}/databases/{database_name}/tables/{table_name}/rows",
    response_model=None,
)
async def table_rows(
    connection_id: str,
    database_name: str,
    table_name: str,
    page: int = 0,
    page_size: int | None = None,
    registry: ConnectionRegistry = Depends(get_registry),
    default_page_size: int = Depends(get_page_size),
) -> dict | JSONResponse:
    """Return one zero-based page of table rows."""
    try:
        rows = await registry.get_table_rows(
            connection_id,
            database_name,
            table_name,
            page=page,
            page_size=page_size if page_size is not None else default_page_size,
        )
    except RegistryError as exc:
        return _failed(exc, {"rows": [], "columnNames": []})
    return success_envelope(rows)


@router.get("/overview")
async def overview(
    registry: ConnectionRegistry = Depends(get_registry),
) -> dict:
    """Every connection with its databases; failures are reported per connection."""
    entries: list[ConnectionOverview] = []
    for config in registry.list_configs():
        try:
            databases = await registry.get_databases(config.id)
        except RegistryError as exc:
            entries.append(
                ConnectionOverview(
                    connection=config,
                    databases=[],
                    error=ErrorDetail(type=exc.error_type, message=exc.message),
                )
            )
            continue
        entries.append(ConnectionOverview(connection=config, databases=databases))
    return success_envelope(OverviewResponse(connections=entries))
