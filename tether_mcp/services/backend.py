"""asyncssh implementation of the session backend.

Hops are opened in order, each one tunnelled through the previous
connection. The leaf then gets a PTY shell, an SFTP client, or a raw TCP
stream depending on the connection kind. If anything fails or the attempt
is cancelled part-way, every hop opened so far is closed before the error
propagates.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import asyncssh

from tether_mcp.config import HostKeyVerifier
from tether_mcp.models import (
    AuthMethod,
    BackendEvent,
    ChainProgress,
    ConnectionKind,
    Hop,
    Liveness,
)
from tether_mcp.protocols import EventListener, ProgressCallback

logger = logging.getLogger(__name__)

READ_SIZE = 8192


class _ProgressClient(asyncssh.SSHClient):
    """Reports when the server starts asking for credentials."""

    def __init__(self, on_auth: Callable[[], None]) -> None:
        super().__init__()
        self._on_auth = on_auth

    def begin_auth(self, username: str) -> bool:
        self._on_auth()
        return True


@dataclass(eq=False)
class BackendSession:
    """Opaque handle returned by ``AsyncsshBackend.connect``."""

    session_id: str
    kind: ConnectionKind
    connections: list[asyncssh.SSHClientConnection] = field(default_factory=list)
    process: asyncssh.SSHClientProcess | None = None
    sftp: asyncssh.SFTPClient | None = None
    reader: Any = None
    writer: Any = None
    pump: asyncio.Task[None] | None = None
    eof: bool = False
    closed: bool = False

    @property
    def leaf(self) -> asyncssh.SSHClientConnection | None:
        """Last SSH connection of the chain, if any."""
        return self.connections[-1] if self.connections else None


class AsyncsshBackend:
    """SessionBackend that talks SSH via asyncssh."""

    def __init__(
        self,
        host_keys: HostKeyVerifier | None = None,
        term_type: str = "xterm-256color",
    ) -> None:
        """Initialize backend.

        Args:
            host_keys: Known-hosts policy (default: verification disabled)
            term_type: Terminal type requested for shell sessions
        """
        self.host_keys = host_keys
        self.term_type = term_type
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register for output/exit/error events."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def connect(
        self,
        kind: ConnectionKind,
        chain: Any,
        session_id: str,
        progress: ProgressCallback | None = None,
    ) -> BackendSession:
        """Open every hop, then the leaf session of the requested kind."""
        kind = ConnectionKind.parse(kind)
        hops: list[Hop] = list(chain.hops)
        total = len(hops)
        # Raw streams end in plain TCP, so the leaf is not an SSH hop
        ssh_hops = hops[:-1] if kind is ConnectionKind.RAW_STREAM else hops

        handle = BackendSession(session_id=session_id, kind=kind)
        try:
            for index, hop in enumerate(ssh_hops):
                conn = await self._connect_hop(hop, index, total, handle.leaf, progress)
                handle.connections.append(conn)

            if kind is ConnectionKind.SHELL:
                await self._open_shell(handle)
            elif kind is ConnectionKind.FILE_TRANSFER:
                await self._open_sftp(handle, hops[-1])
            else:
                await self._open_stream(handle, hops[-1], total, progress)
        except BaseException:
            await self._close(handle)
            raise

        logger.info("Backend session %s ready (%s, %d hop(s))", session_id, kind.value, total)
        return handle

    async def disconnect(self, handle: BackendSession) -> None:
        """Close a session. Safe to call twice."""
        if handle.closed:
            return
        await self._close(handle)
        logger.info("Backend session %s closed", handle.session_id)

    async def probe(self, handle: BackendSession) -> Liveness:
        """Check hops and run a cheap round-trip on the leaf."""
        if handle.closed or handle.eof:
            return Liveness.DEAD
        if any(conn.is_closed() for conn in handle.connections):
            return Liveness.DEAD

        if handle.kind is ConnectionKind.SHELL:
            if handle.process is None or handle.process.exit_status is not None:
                return Liveness.DEAD
            result = await handle.leaf.run("true", check=False)
            return Liveness.ALIVE if result.exit_status == 0 else Liveness.DEAD

        if handle.kind is ConnectionKind.FILE_TRANSFER:
            if handle.sftp is None:
                return Liveness.DEAD
            await handle.sftp.realpath(".")
            return Liveness.ALIVE

        return Liveness.ALIVE if handle.writer is not None else Liveness.DEAD

    async def _connect_hop(
        self,
        hop: Hop,
        index: int,
        total: int,
        tunnel: asyncssh.SSHClientConnection | None,
        progress: ProgressCallback | None,
    ) -> asyncssh.SSHClientConnection:
        report = partial(self._report, progress, index, total, hop.host_id)
        report("connecting", hop.endpoint)

        options: dict[str, Any] = {
            "port": hop.port,
            "username": hop.username,
            "known_hosts": None,
            "client_factory": partial(
                _ProgressClient, partial(report, "authenticating", hop.username)
            ),
        }
        if self.host_keys is not None:
            options.update(self.host_keys.connect_options())
        if tunnel is not None:
            options["tunnel"] = tunnel
        if hop.auth_method is AuthMethod.PASSWORD:
            options["password"] = hop.password
            options["client_keys"] = None
        elif hop.key_path:
            options["client_keys"] = [hop.key_path]

        try:
            conn = await asyncssh.connect(hop.address, **options)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            report("failed", str(e) or type(e).__name__)
            raise

        report("connected", hop.endpoint)
        return conn

    async def _open_shell(self, handle: BackendSession) -> None:
        handle.process = await handle.leaf.create_process(
            term_type=self.term_type, encoding=None
        )
        handle.pump = asyncio.create_task(
            self._pump_process(handle), name=f"pump-{handle.session_id}"
        )

    async def _open_sftp(self, handle: BackendSession, leaf: Hop) -> None:
        handle.sftp = await handle.leaf.start_sftp_client()
        if leaf.working_directory:
            await handle.sftp.chdir(leaf.working_directory)

    async def _open_stream(
        self,
        handle: BackendSession,
        leaf: Hop,
        total: int,
        progress: ProgressCallback | None,
    ) -> None:
        report = partial(self._report, progress, total - 1, total, leaf.host_id)
        report("connecting", f"{leaf.address}:{leaf.port}")
        if handle.leaf is not None:
            handle.reader, handle.writer = await handle.leaf.open_connection(
                leaf.address, leaf.port
            )
        else:
            handle.reader, handle.writer = await asyncio.open_connection(
                leaf.address, leaf.port
            )
        report("connected", f"{leaf.address}:{leaf.port}")
        handle.pump = asyncio.create_task(
            self._pump_stream(handle), name=f"pump-{handle.session_id}"
        )

    async def _pump_process(self, handle: BackendSession) -> None:
        process = handle.process
        emit = partial(self._emit_for, handle)
        try:
            while True:
                data = await process.stdout.read(READ_SIZE)
                if not data:
                    break
                emit("output", data=data)
            await process.wait_closed()
        except (asyncssh.ConnectionLost, asyncssh.ProcessError, BrokenPipeError) as e:
            handle.eof = True
            if not handle.closed:
                emit("error", reason=f"Channel closed: {e}")
            return

        handle.eof = True
        if not handle.closed:
            emit("exit", exit_code=process.exit_status)

    async def _pump_stream(self, handle: BackendSession) -> None:
        emit = partial(self._emit_for, handle)
        try:
            while True:
                data = await handle.reader.read(READ_SIZE)
                if not data:
                    break
                emit("output", data=data)
        except (asyncssh.ConnectionLost, OSError) as e:
            handle.eof = True
            if not handle.closed:
                emit("error", reason=f"Stream lost: {e}")
            return

        handle.eof = True
        if not handle.closed:
            emit("exit", reason="Stream closed by peer")

    def _emit_for(self, handle: BackendSession, event_type: str, **fields: Any) -> None:
        self._emit(BackendEvent(handle.session_id, event_type, handle=handle, **fields))

    async def _close(self, handle: BackendSession) -> None:
        """Release everything a handle holds, leaf first."""
        handle.closed = True
        if handle.pump is not None and not handle.pump.done():
            handle.pump.cancel()
            await asyncio.wait({handle.pump})
        if handle.process is not None:
            handle.process.close()
        if handle.sftp is not None:
            handle.sftp.exit()
        if handle.writer is not None:
            handle.writer.close()

        for conn in reversed(handle.connections):
            conn.close()
            try:
                await conn.wait_closed()
            except (asyncssh.Error, OSError) as e:
                logger.debug("Error while closing hop of %s: %s", handle.session_id, e)
        handle.connections.clear()

    def _emit(self, event: BackendEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Backend event listener failed")

    @staticmethod
    def _report(
        progress: ProgressCallback | None,
        index: int,
        total: int,
        host_id: str,
        status: str,
        message: str = "",
    ) -> None:
        logger.debug("[%d/%d] %s %s: %s", index + 1, total, host_id, status, message)
        if progress is not None:
            progress(ChainProgress(index, total, host_id, status, message))
