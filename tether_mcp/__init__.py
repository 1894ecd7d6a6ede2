"""Tether MCP: resilient multi-hop SSH sessions over MCP."""

__version__ = "0.1.0"
