"""Shared FastAPI dependencies for routes."""

from .._connections import DEFAULT_PAGE_SIZE, ConnectionRegistry


def get_registry() -> ConnectionRegistry:
    """Dependency placeholder; overridden by the app factory."""
    raise RuntimeError("ConnectionRegistry not initialized")


def get_page_size() -> int:
    """Default page size for table rows; overridden by the app factory."""
    return DEFAULT_PAGE_SIZE
