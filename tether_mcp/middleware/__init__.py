"""Tether MCP middleware components."""

from tether_mcp.middleware.base import TetherMiddleware
from tether_mcp.middleware.errors import ErrorHandlingMiddleware
from tether_mcp.middleware.logging import LoggingMiddleware

__all__ = [
    "ErrorHandlingMiddleware",
    "LoggingMiddleware",
    "TetherMiddleware",
]
