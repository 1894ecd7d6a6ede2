"""Tether MCP FastMCP server.

Thin wiring of tools, resources and middleware. Session logic lives in
services/.
"""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from tether_mcp.config import Settings
from tether_mcp.dependencies import Dependencies
from tether_mcp.middleware import ErrorHandlingMiddleware, LoggingMiddleware
from tether_mcp.resources import (
    list_hosts_resource,
    list_sessions_resource,
    session_resource,
)
from tether_mcp.services import reset_state, set_dependencies
from tether_mcp.tools import cancel, close, connect, retry, sessions
from tether_mcp.utils.console import MCPRequestFormatter


def _configure_logging() -> None:
    """Configure colorful logging for the tether_mcp package.

    Called at module load so logging is set up however the server starts.
    """
    log_level = os.getenv("TETHER_LOG_LEVEL", "INFO").upper()
    use_colors = os.getenv("TETHER_LOG_COLORS", "true").lower() != "false"
    if not sys.stderr.isatty():
        use_colors = False

    tether_logger = logging.getLogger("tether_mcp")
    tether_logger.setLevel(getattr(logging, log_level, logging.INFO))

    if not tether_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(MCPRequestFormatter(use_colors=use_colors))
        tether_logger.addHandler(handler)
        tether_logger.propagate = False

    for noisy_logger in [
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "asyncssh",
        "httpx",
        "httpcore",
        "fastmcp",
        "starlette",
        "anyio",
    ]:
        lg = logging.getLogger(noisy_logger)
        lg.setLevel(logging.WARNING)
        lg.handlers = []
        lg.propagate = False

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(logging.WARNING)


_configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Build the service graph, start the network monitor, tear down on exit.

    Args:
        server: The FastMCP server instance

    Yields:
        Dict with the configured host ids
    """
    logger.info("Tether MCP server starting up")

    deps = Dependencies.create()
    server.deps = deps
    set_dependencies(deps)

    hosts = [host.id for host in deps.catalog.list()]
    logger.info("Loaded %d host(s): %s", len(hosts), ", ".join(hosts) if hosts else "(none)")

    await deps.start()
    logger.info("Tether MCP server ready to accept connections")

    try:
        yield {"hosts": hosts}
    finally:
        logger.info("Tether MCP server shutting down")
        await deps.cleanup()
        reset_state()
        logger.info("Tether MCP server shutdown complete")


def configure_middleware(server: FastMCP, settings: Settings | None = None) -> None:
    """Add middleware: ErrorHandling (inner) then Logging (outer).

    Args:
        server: The FastMCP server to configure.
        settings: Logging options (default: from environment)
    """
    settings = settings or Settings.from_env()
    server.add_middleware(ErrorHandlingMiddleware(include_traceback=settings.include_traceback))
    server.add_middleware(
        LoggingMiddleware(
            include_payloads=settings.log_payloads,
            slow_threshold_ms=settings.slow_threshold_ms,
        )
    )


def create_server() -> FastMCP:
    """Create and configure the MCP server.

    Returns:
        Configured FastMCP server instance
    """
    server = FastMCP("tether_mcp", lifespan=app_lifespan)

    configure_middleware(server)

    for tool in (connect, retry, cancel, close, sessions):
        server.tool()(tool)

    server.resource("hosts://list")(list_hosts_resource)
    server.resource("sessions://list")(list_sessions_resource)
    server.resource("sessions://{session_id}")(session_resource)

    @server.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> PlainTextResponse:
        """Health check endpoint."""
        client_host = request.client.host if request.client else "unknown"
        logger.debug("Health check from %s", client_host)
        return PlainTextResponse("OK")

    return server


# Default server instance
mcp = create_server()
