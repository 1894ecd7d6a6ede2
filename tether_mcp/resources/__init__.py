"""MCP resources for Tether MCP."""

from tether_mcp.resources.hosts import list_hosts_resource
from tether_mcp.resources.sessions import list_sessions_resource, session_resource

__all__ = [
    "list_hosts_resource",
    "list_sessions_resource",
    "session_resource",
]
