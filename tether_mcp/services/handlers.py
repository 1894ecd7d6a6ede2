"""Connection handlers and the factory that selects them.

One handler variant per ConnectionKind. A handler is bound to a single
session by the factory and is the only place where backend-specific
exceptions are translated into the shared error taxonomy.
"""

import asyncio
import logging
from abc import ABC
from typing import TYPE_CHECKING, ClassVar

import asyncssh

from tether_mcp.errors import (
    AuthenticationError,
    BackendError,
    ConnectTimeoutError,
    EngineError,
    InvariantViolation,
    NetworkError,
)
from tether_mcp.models import ConnectionKind, ConnectResult, Liveness
from tether_mcp.protocols import ProgressCallback, SessionBackend

if TYPE_CHECKING:
    from tether_mcp.models import Session
    from tether_mcp.services.chain import ResolvedChain

logger = logging.getLogger(__name__)


class ConnectionHandler(ABC):
    """Shared connect/disconnect/probe contract."""

    kind: ClassVar[ConnectionKind]
    interactive: ClassVar[bool] = True

    def __init__(self, backend: SessionBackend) -> None:
        self.backend = backend

    async def connect(
        self,
        session: "Session",
        chain: "ResolvedChain",
        progress: ProgressCallback | None = None,
    ) -> ConnectResult:
        """Ask the backend for a session of this handler's kind.

        Args:
            session: Session the connection belongs to
            chain: Resolved chain, leaf last
            progress: Optional per-hop progress callback

        Returns:
            ConnectResult with the backend handle

        Raises:
            EngineError: Normalized backend failure
            asyncio.CancelledError: If the attempt was cancelled
            InvariantViolation: If the backend reported success without a handle
        """
        logger.debug(
            "%s connecting session %s via %r", type(self).__name__, session.id, chain
        )
        try:
            handle = await self.backend.connect(self.kind, chain, session.id, progress)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise self.translate_error(e, host_id=session.host.id) from e

        if handle is None:
            raise InvariantViolation(
                f"Backend returned success without a handle for session {session.id}"
            )
        return ConnectResult(handle=handle, interactive=self.interactive)

    async def disconnect(self, session: "Session") -> None:
        """Close the session's handle if it holds one."""
        handle = session.handle
        if handle is None:
            return
        try:
            await self.backend.disconnect(handle)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The handle is gone either way
            logger.warning("Disconnect of session %s failed: %s", session.id, e)

    async def probe(self, session: "Session") -> Liveness:
        """Check liveness; any backend failure counts as dead."""
        if session.handle is None:
            return Liveness.DEAD
        try:
            return await self.backend.probe(session.handle)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Probe of session %s raised %s", session.id, e)
            return Liveness.DEAD

    def translate_error(self, error: BaseException, host_id: str | None = None) -> EngineError:
        """Map a backend failure onto the shared taxonomy."""
        if isinstance(error, EngineError):
            return error
        if isinstance(error, asyncssh.PermissionDenied):
            return AuthenticationError(f"Authentication failed: {error}", host_id=host_id)
        if isinstance(error, TimeoutError):
            return ConnectTimeoutError(f"Timed out: {str(error) or 'no response'}", host_id=host_id)
        if isinstance(error, (asyncssh.DisconnectError, asyncssh.ConnectionLost)):
            return NetworkError(f"Connection lost: {error}", host_id=host_id)
        if isinstance(error, OSError):
            return NetworkError(f"Network error: {error}", host_id=host_id)
        return BackendError(f"{type(error).__name__}: {error}", host_id=host_id)


class ShellHandler(ConnectionHandler):
    """Interactive shell sessions."""

    kind = ConnectionKind.SHELL


class FileTransferHandler(ConnectionHandler):
    """SFTP file browser sessions."""

    kind = ConnectionKind.FILE_TRANSFER

    def translate_error(self, error: BaseException, host_id: str | None = None) -> EngineError:
        if isinstance(error, asyncssh.SFTPError):
            return BackendError(f"SFTP error: {error.reason}", host_id=host_id)
        return super().translate_error(error, host_id)


class RawStreamHandler(ConnectionHandler):
    """Plain TCP streams (telnet-style) to the leaf, tunnelled through jumps."""

    kind = ConnectionKind.RAW_STREAM

    def translate_error(self, error: BaseException, host_id: str | None = None) -> EngineError:
        if isinstance(error, ConnectionRefusedError):
            return NetworkError(f"Connection refused by {host_id or 'leaf'}", host_id=host_id)
        if isinstance(error, asyncssh.ChannelOpenError):
            return NetworkError(f"Tunnel to leaf rejected: {error.reason}", host_id=host_id)
        return super().translate_error(error, host_id)


HANDLERS: dict[ConnectionKind, type[ConnectionHandler]] = {
    ConnectionKind.SHELL: ShellHandler,
    ConnectionKind.FILE_TRANSFER: FileTransferHandler,
    ConnectionKind.RAW_STREAM: RawStreamHandler,
}


class HandlerFactory:
    """Creates the handler variant for a connection kind."""

    def __init__(self, backend: SessionBackend) -> None:
        self.backend = backend

    def create(self, kind: ConnectionKind | str) -> ConnectionHandler:
        """Create a handler bound to nothing yet (one per session).

        Args:
            kind: ConnectionKind or an accepted alias string

        Returns:
            New handler instance

        Raises:
            UnsupportedConnectionKindError: For unknown kinds
        """
        handler_cls = HANDLERS[ConnectionKind.parse(kind)]
        return handler_cls(self.backend)
