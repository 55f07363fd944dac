"""Error handling utilities."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """Custom API error with HTTP status code."""

    def __init__(self, status_code: int, error_type: str, message: str):
        self.status_code = status_code
        self.error_type = error_type
        self.message = message
        super().__init__(message)


class RegistryError(ApiError):
    """Base class for failures raised by the connection registry."""

    status_code = 500
    error_type = "RegistryError"

    def __init__(self, message: str):
        super().__init__(self.status_code, self.error_type, message)


class ConnectionFailedError(RegistryError):
    """Opening or using a MySQL connection failed.

    The message is the driver's own text.
    """

    status_code = 502
    error_type = "ConnectionError"


class ConfigNotFoundError(RegistryError):
    """An operation referenced an unknown connection id."""

    status_code = 404
    error_type = "ConfigNotFound"

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection configuration not found for id: {connection_id}")


class ConfigValidationError(RegistryError):
    """Connection parameters were rejected before any I/O happened."""

    status_code = 400
    error_type = "ValidationError"


class CredentialStoreError(RegistryError):
    """The secret store refused to persist a password."""

    status_code = 500
    error_type = "CredentialStoreError"


def error_body(error_type: str, message: str, data: dict | None = None) -> dict:
    """Build the error envelope, optionally carrying an (empty) result."""
    body: dict = {
        "status": "error",
        "error": {"type": error_type, "message": message},
    }
    if data is not None:
        body["data"] = data
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Register error handlers on the FastAPI app."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_type, exc.message),
        )
