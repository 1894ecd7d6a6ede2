"""Utilities for Tether MCP."""

from tether_mcp.utils.console import ColorfulFormatter, MCPRequestFormatter
from tether_mcp.utils.ping import any_host_online, check_host_online, check_hosts_online

__all__ = [
    "any_host_online",
    "check_host_online",
    "check_hosts_online",
    "ColorfulFormatter",
    "MCPRequestFormatter",
]
