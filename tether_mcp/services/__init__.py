"""Services for Tether MCP."""

from tether_mcp.services.backend import AsyncsshBackend, BackendSession
from tether_mcp.services.catalog import HostCatalog, Keychain
from tether_mcp.services.chain import ChainResolver, CredentialMaterial, ResolvedChain
from tether_mcp.services.engine import ConnectionEngine
from tether_mcp.services.handlers import (
    ConnectionHandler,
    FileTransferHandler,
    HandlerFactory,
    RawStreamHandler,
    ShellHandler,
)
from tether_mcp.services.heartbeat import HeartbeatMonitor, HeartbeatState
from tether_mcp.services.network import NetworkStateMonitor
from tether_mcp.services.reconnect import ReconnectEngine
from tether_mcp.services.state import get_dependencies, reset_state, set_dependencies
from tether_mcp.services.state_machine import SessionEvent, SessionStateMachine

__all__ = [
    "AsyncsshBackend",
    "BackendSession",
    "ChainResolver",
    "ConnectionEngine",
    "ConnectionHandler",
    "CredentialMaterial",
    "FileTransferHandler",
    "HandlerFactory",
    "HeartbeatMonitor",
    "HeartbeatState",
    "HostCatalog",
    "Keychain",
    "NetworkStateMonitor",
    "RawStreamHandler",
    "ReconnectEngine",
    "ResolvedChain",
    "SessionEvent",
    "SessionStateMachine",
    "ShellHandler",
    "get_dependencies",
    "reset_state",
    "set_dependencies",
]
