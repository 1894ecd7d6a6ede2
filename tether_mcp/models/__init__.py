"""Data models for Tether MCP."""

from tether_mcp.models.backend import BackendEvent, ConnectResult, Liveness
from tether_mcp.models.chain import ChainProgress, Hop
from tether_mcp.models.host import AuthMethod, ConnectionKind, HostConfig, RetryPolicy
from tether_mcp.models.session import (
    ConnectionState,
    LastError,
    ReconnectState,
    Session,
    SessionSnapshot,
)

__all__ = [
    "AuthMethod",
    "BackendEvent",
    "ChainProgress",
    "ConnectResult",
    "ConnectionKind",
    "ConnectionState",
    "HostConfig",
    "Hop",
    "LastError",
    "Liveness",
    "ReconnectState",
    "RetryPolicy",
    "Session",
    "SessionSnapshot",
]
