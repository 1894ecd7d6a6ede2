"""MCP tools for Tether MCP."""

from tether_mcp.tools.sessions import cancel, close, connect, retry, sessions

__all__ = ["cancel", "close", "connect", "retry", "sessions"]
