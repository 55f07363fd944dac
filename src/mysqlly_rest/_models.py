"""Pydantic request/response models."""

from __future__ import annotations

import datetime as dt
import json
import math
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# === Base class for camelCase serialization ===


class CamelModel(BaseModel):
    """Base model that serializes to camelCase."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
    )


def success_envelope(data: CamelModel | None = None) -> dict:
    """Wrap response data in success envelope."""
    if data is None:
        return {"status": "success", "data": None}
    return {"status": "success", "data": data.model_dump(by_alias=True)}


# === Connection configs ===


class ConnectionConfig(CamelModel):
    """Connection parameters for one registered MySQL server.

    The password only lives on in-memory copies held by the registry. Every
    persisted or listed copy carries an empty string.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )

    id: str
    name: str
    host: str
    port: int = Field(ge=1, le=65535)
    user: str
    password: str = ""

    @property
    def description(self) -> str:
        """Short ``user@host:port`` label."""
        return f"{self.user}@{self.host}:{self.port}"

    def without_password(self) -> ConnectionConfig:
        return self.model_copy(update={"password": ""})

    def with_password(self, password: str) -> ConnectionConfig:
        return self.model_copy(update={"password": password})


# === Introspection results ===


class DatabaseInfo(CamelModel):
    name: str
    connection_id: str


class TableInfo(CamelModel):
    name: str
    database_name: str
    connection_id: str


class ColumnInfo(CamelModel):
    """One row of ``DESCRIBE <table>``."""

    name: str
    type: str
    nullable: str
    key: str
    default: str | None = None
    extra: str


CellKind = Literal["null", "string", "number", "boolean", "json"]


class Cell(BaseModel):
    """A single table value tagged with how it should be rendered."""

    kind: CellKind
    value: Any = None


def to_cell(value: Any) -> Cell:
    """Tag a driver value.

    JSON columns come back from aiomysql as text, so strings holding a JSON
    object or array are decoded and tagged ``json``.
    """
    if value is None:
        return Cell(kind="null")
    if isinstance(value, bool):
        return Cell(kind="boolean", value=value)
    if isinstance(value, int):
        return Cell(kind="number", value=value)
    if isinstance(value, float):
        if math.isfinite(value):
            return Cell(kind="number", value=value)
        return Cell(kind="string", value=str(value))
    if isinstance(value, Decimal):
        # Keep the exact textual form; float() would lose precision.
        return Cell(kind="number", value=str(value))
    if isinstance(value, (dict, list)):
        return Cell(kind="json", value=value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return Cell(kind="string", value=raw.decode("utf-8"))
        except UnicodeDecodeError:
            return Cell(kind="string", value="0x" + raw.hex())
    if isinstance(value, (dt.date, dt.time)):
        return Cell(kind="string", value=value.isoformat())
    if isinstance(value, dt.timedelta):
        return Cell(kind="string", value=str(value))
    if isinstance(value, str):
        stripped = value.lstrip()
        if stripped[:1] in ("{", "["):
            try:
                decoded = json.loads(value)
            except ValueError:
                pass
            else:
                if isinstance(decoded, (dict, list)):
                    return Cell(kind="json", value=decoded)
        return Cell(kind="string", value=value)
    return Cell(kind="string", value=str(value))


class TableRows(CamelModel):
    """One page of table data."""

    rows: list[dict[str, Cell]]
    column_names: list[str]
    total_rows: int
    total_pages: int
    page: int
    page_size: int


# === Requests ===


class AddConnectionRequest(CamelModel):
    """Request body for registering a connection."""

    name: str
    host: str = "localhost"
    # Validated by the registry so a bad port gets the same error as elsewhere.
    port: int | str = 3306
    user: str = "root"
    password: str = ""


# === Responses ===


class ConnectionCreatedResponse(CamelModel):
    id: str


class ConnectionsResponse(CamelModel):
    """Response for listing connections."""

    connections: list[ConnectionConfig]


class DatabasesResponse(CamelModel):
    databases: list[DatabaseInfo]


class TablesResponse(CamelModel):
    tables: list[TableInfo]


class ColumnsResponse(CamelModel):
    columns: list[ColumnInfo]


class ConnectionOverview(CamelModel):
    """A connection together with its databases, or the error listing them."""

    connection: ConnectionConfig
    databases: list[DatabaseInfo]
    error: ErrorDetail | None = None


class OverviewResponse(CamelModel):
    connections: list[ConnectionOverview]


# === Errors ===


class ErrorDetail(BaseModel):
    """Error details."""

    message: str
    type: str


class ErrorResponse(BaseModel):
    """Error response."""

    status: str = "error"
    error: ErrorDetail


ConnectionOverview.model_rebuild()
