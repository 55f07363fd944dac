"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

from ._connections import DEFAULT_PAGE_SIZE, ConnectionRegistry
from ._errors import register_error_handlers
from ._routes import _browse, _connections, _health
from ._routes._dependencies import get_page_size, get_registry

logger = logging.getLogger(__name__)


def _make_lifespan(registry: ConnectionRegistry):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        app.state.registry = registry
        await registry.load()
        yield
        await registry.close_all()
        logger.info("Closed all MySQL connections")

    return lifespan


def create_app(
    registry: ConnectionRegistry,
    page_size: int = DEFAULT_PAGE_SIZE,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="mysqlly REST API",
        description="Browse MySQL connections, databases, tables and rows",
        lifespan=_make_lifespan(registry),
    )

    # Set up dependency overrides
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_page_size] = lambda: page_size

    # CORS (consumer configurable)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Register error handlers
    register_error_handlers(app)

    # Create /api/v1 router and register sub-routes
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(_health.router)
    api_v1.include_router(_connections.router)
    api_v1.include_router(_browse.router)

    # Mount the versioned API
    app.include_router(api_v1)

    return app
