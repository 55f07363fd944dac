"""mysqlly REST API: browse MySQL connections, databases, tables and rows."""

from importlib.metadata import version

from ._app import create_app
from ._connections import ConnectionRegistry

__version__ = version("mysqlly-rest")
__all__ = ["create_app", "ConnectionRegistry"]
