"""Protocol interfaces for dependency inversion.

Defines the boundaries the connection engine depends on, so the engine can
run against the asyncssh backend in production and scripted fakes in tests.

Usage Example:

    from tether_mcp.protocols import SessionBackend

    async def open_shell(backend: SessionBackend, chain, session_id):
        '''Depends on the protocol, not on asyncssh.'''
        return await backend.connect(ConnectionKind.SHELL, chain, session_id)

    # Production
    from tether_mcp.services.backend import AsyncsshBackend
    await open_shell(AsyncsshBackend(), chain, "s-1")

    # Tests
    class FakeBackend:
        async def connect(self, kind, chain, session_id, progress=None):
            return "handle-1"
        ...
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from tether_mcp.models import BackendEvent, ChainProgress, ConnectionKind, HostConfig, Liveness

ProgressCallback = Callable[[ChainProgress], None]
EventListener = Callable[[BackendEvent], None]


@runtime_checkable
class SessionBackend(Protocol):
    """Byte-level transport collaborator.

    Implementations own the wire protocol. They must release everything
    allocated so far when ``connect`` fails or is cancelled.
    """

    async def connect(
        self,
        kind: ConnectionKind,
        chain: Any,
        session_id: str,
        progress: ProgressCallback | None = None,
    ) -> Any:
        """Open a session of the given kind through the resolved chain.

        Args:
            kind: Connection kind requested by the handler
            chain: ResolvedChain, leaf last
            session_id: Engine session id, used to scope events
            progress: Optional per-hop progress callback

        Returns:
            Opaque session handle

        Raises:
            Exception: Backend-specific failure, translated by the handler
        """
        ...

    async def disconnect(self, handle: Any) -> None:
        """Close a session handle. Safe to call twice."""
        ...

    async def probe(self, handle: Any) -> Liveness:
        """Check whether a session is still responsive."""
        ...

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register for output/exit/error events.

        Returns:
            Function that removes the listener
        """
        ...


@runtime_checkable
class HostLookup(Protocol):
    """Read-only access to the host catalog."""

    def get(self, host_id: str) -> HostConfig | None:
        """Return the current snapshot of a host, or None."""
        ...


@runtime_checkable
class KeySource(Protocol):
    """Source of stored private keys referenced by ``HostConfig.key_id``."""

    def get_private_key(self, key_id: str) -> str | None:
        """Return PEM/OpenSSH private key text, or None if unknown."""
        ...


__all__ = [
    "EventListener",
    "HostLookup",
    "KeySource",
    "ProgressCallback",
    "SessionBackend",
]
