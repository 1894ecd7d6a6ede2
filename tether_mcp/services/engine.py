"""Connection engine: the session registry and the UI intents.

Composes the chain resolver, handler factory, per-session state machines,
heartbeat monitor and reconnect engine around one backend.

Concurrency rules:

- Every connect attempt runs under a fresh generation. Results tagged with
  an older generation are discarded, and a handle produced by a superseded
  attempt is disconnected at once.
- Handle swaps happen under the session lock. Intents that interrupt work
  (retry, cancel, close) first invalidate the generation and cancel the
  running tasks, and only then take the lock.
- Chain credential material is cleaned up in a ``finally`` after every
  attempt, whatever its outcome.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from functools import partial
from typing import Any

from tether_mcp.config import Settings
from tether_mcp.errors import (
    ConnectTimeoutError,
    EngineError,
    NetworkError,
    ReconnectExhaustedError,
    SessionNotFoundError,
    UnknownHostError,
)
from tether_mcp.models import (
    BackendEvent,
    ChainProgress,
    ConnectionState,
    ConnectResult,
    HostConfig,
    LastError,
    Session,
    SessionSnapshot,
)
from tether_mcp.protocols import EventListener, HostLookup, KeySource, SessionBackend
from tether_mcp.services.chain import ChainResolver, ResolvedChain
from tether_mcp.services.handlers import ConnectionHandler, HandlerFactory
from tether_mcp.services.heartbeat import HeartbeatMonitor
from tether_mcp.services.network import NetworkStateMonitor
from tether_mcp.services.reconnect import ReconnectEngine
from tether_mcp.services.state_machine import (
    SessionEvent,
    SessionStateMachine,
    TransitionListener,
)

logger = logging.getLogger(__name__)


def _discard(listeners: list[Any], listener: Any) -> None:
    if listener in listeners:
        listeners.remove(listener)


class ConnectionEngine:
    """Owns every session and drives it through its lifecycle."""

    def __init__(
        self,
        backend: SessionBackend,
        catalog: HostLookup,
        keychain: KeySource,
        network: NetworkStateMonitor,
        settings: Settings | None = None,
        resolver: ChainResolver | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            backend: Transport collaborator
            catalog: Host lookup, consulted again on every attempt
            keychain: Stored private keys for chain hops
            network: Shared connectivity monitor
            settings: Engine settings (default: Settings())
            resolver: Chain resolver override (default: built from catalog)
        """
        self.settings = settings or Settings()
        self.backend = backend
        self.catalog = catalog
        self.network = network
        self.factory = HandlerFactory(backend)
        self.resolver = resolver or ChainResolver(catalog, keychain, self.settings.key_dir)
        self.heartbeat = HeartbeatMonitor(
            self._on_liveness_lost,
            probe_timeout=self.settings.probe_timeout,
            max_failures=self.settings.heartbeat_max_failures,
        )
        self.reconnect = ReconnectEngine(
            network,
            self._attempt,
            self.settings,
            on_exhausted=self._on_reconnect_exhausted,
        )

        self._sessions: dict[str, Session] = {}
        self._machines: dict[str, SessionStateMachine] = {}
        self._attempts: dict[str, asyncio.Task[EngineError | None]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._observers: list[TransitionListener] = []
        self._output_listeners: list[EventListener] = []
        self._unsubscribe_backend = backend.subscribe(self._on_backend_event)

    # Intents

    async def connect(self, host: HostConfig | str) -> SessionSnapshot:
        """Open a new session and run its first attempt.

        Args:
            host: HostConfig, or a host id from the catalog

        Returns:
            Snapshot after the first attempt settles

        Raises:
            UnknownHostError: If a host id is not in the catalog
        """
        if isinstance(host, str):
            config = self.catalog.get(host)
            if config is None:
                raise UnknownHostError(host)
            host = config

        session = Session(
            id=f"{host.id}-{uuid.uuid4().hex[:8]}",
            host=host,
            log_size=self.settings.connection_log_size,
        )
        machine = SessionStateMachine(session)
        machine.add_listener(self._on_transition)
        self._sessions[session.id] = session
        self._machines[session.id] = machine
        logger.info("Opened session %s for %s (%s)", session.id, host.id, host.endpoint)

        await self._run_attempt(session)
        # The session may have been closed while connecting
        return self._snapshot(session)

    async def retry(self, session_id: str) -> SessionSnapshot:
        """Discard any outstanding work and run a fresh attempt."""
        session = self.get_session(session_id)
        await self._interrupt(session)
        session.reconnect_attempt_count = 0
        session.reconnect_exhausted = False
        logger.info("Retry requested for session %s", session_id)
        await self._run_attempt(session)
        return self.snapshot(session_id)

    async def cancel(self, session_id: str) -> SessionSnapshot:
        """User cancel: stop all work and disconnect. Not a failure."""
        session = self.get_session(session_id)
        await self._interrupt(session)
        self._machines[session_id].apply(SessionEvent.CANCEL)
        session.reconnect_exhausted = False
        async with session.lock:
            await self._release_handle(session)
        return self.snapshot(session_id)

    async def close(self, session_id: str) -> None:
        """Cancel a session and remove it from the registry."""
        await self.cancel(session_id)
        self.heartbeat.stop(session_id)
        self._sessions.pop(session_id, None)
        self._machines.pop(session_id, None)
        logger.info("Closed session %s", session_id)

    async def shutdown(self) -> None:
        """Close every session and stop background work."""
        if self._sessions:
            logger.info("Shutting down %d session(s)", len(self._sessions))
        for session_id in list(self._sessions):
            await self.close(session_id)
        await self.reconnect.cancel_all()
        self.heartbeat.stop_all()
        if self._background:
            await asyncio.wait(set(self._background))
        self._unsubscribe_backend()
        self.resolver.close()

    # Queries

    def get_session(self, session_id: str) -> Session:
        """Registered session.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def snapshot(self, session_id: str) -> SessionSnapshot:
        """Read-only view of a session's observable fields."""
        return self._snapshot(self.get_session(session_id))

    def _snapshot(self, session: Session) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=session.id,
            host_id=session.host.id,
            label=session.label,
            connection_state=session.state,
            is_reconnecting=self.reconnect.is_reconnecting(session.id),
            reconnect_attempt_count=session.reconnect_attempt_count,
            reconnect_exhausted=session.reconnect_exhausted,
            last_error=session.last_error,
            generation=session.generation,
            connection_log=tuple(session.connection_log),
        )

    def list_sessions(self) -> list[SessionSnapshot]:
        """Snapshots of all sessions, oldest first."""
        return [self.snapshot(session_id) for session_id in self._sessions]

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        """Observe every applied transition of every session.

        Returns:
            Unsubscribe function
        """
        self._observers.append(listener)
        return partial(_discard, self._observers, listener)

    def add_output_listener(self, listener: EventListener) -> Callable[[], None]:
        """Receive backend ``output`` events.

        Returns:
            Unsubscribe function
        """
        self._output_listeners.append(listener)
        return partial(_discard, self._output_listeners, listener)

    def __len__(self) -> int:
        return len(self._sessions)

    # Attempts

    async def _run_attempt(self, session: Session) -> None:
        """Run ``_attempt`` as a tracked task and wait for it to settle."""
        task = asyncio.create_task(self._attempt(session), name=f"connect-{session.id}")
        self._attempts[session.id] = task
        task.add_done_callback(partial(self._forget_attempt, session.id))
        await asyncio.wait({task})
        if not task.cancelled():
            # Surfaces programmer errors; engine errors are returned, not raised
            task.result()

    def _forget_attempt(self, session_id: str, task: asyncio.Task[Any]) -> None:
        if self._attempts.get(session_id) is task:
            del self._attempts[session_id]

    async def _interrupt(self, session: Session) -> None:
        """Supersede every outstanding attempt and reconnect loop."""
        machine = self._machines[session.id]
        machine.invalidate()
        await self.reconnect.cancel_reconnect(session.id)
        task = self._attempts.pop(session.id, None)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    async def _attempt(self, session: Session) -> EngineError | None:
        """Run one fresh connect attempt.

        Returns:
            None on success or when superseded, the normalized error otherwise
        """
        machine = self._machines.get(session.id)
        if machine is None:
            return None

        if not (session.state is ConnectionState.DISCONNECTED or session.state.is_failed):
            machine.apply(SessionEvent.CANCEL)

        generation = machine.begin_attempt()
        event = SessionEvent.RETRY if session.state.is_failed else SessionEvent.CONNECT
        machine.apply(event, generation)

        try:
            host = self.catalog.get(session.host.id) or session.host
            session.host = host
            handler = self.factory.create(host.connection_kind)
            chain = await self.resolver.resolve(host.chain, host)
        except EngineError as e:
            session.log(f"Error: {e.message}")
            machine.apply(SessionEvent.FAILURE, generation, error=e)
            return e

        try:
            return await self._connect_chain(session, machine, generation, handler, chain)
        finally:
            chain.cleanup()

    async def _connect_chain(
        self,
        session: Session,
        machine: SessionStateMachine,
        generation: int,
        handler: ConnectionHandler,
        chain: ResolvedChain,
    ) -> EngineError | None:
        host = session.host
        timeout = self.settings.connect_timeout
        async with session.lock:
            if not machine.is_current(generation):
                return None
            await self._release_handle(session)
            session.handler = handler
            session.log(f"Connecting to {host.endpoint} via {' -> '.join(chain.host_ids)}")
            progress = partial(self._on_progress, session, generation)
            try:
                result = await asyncio.wait_for(
                    handler.connect(session, chain, progress), timeout
                )
            except TimeoutError:
                error: EngineError = ConnectTimeoutError(
                    f"Connection timed out after {timeout:g}s", host_id=host.id
                )
            except EngineError as e:
                error = e
            else:
                self._accept(session, machine, generation, handler, result)
                return None

        session.log(f"Error: {error.message}")
        if isinstance(error, ConnectTimeoutError) and session.state is ConnectionState.CONNECTING:
            machine.apply(SessionEvent.TIMEOUT, generation, error=error)
        else:
            machine.apply(SessionEvent.FAILURE, generation, error=error)
        return error

    def _accept(
        self,
        session: Session,
        machine: SessionStateMachine,
        generation: int,
        handler: ConnectionHandler,
        result: ConnectResult,
    ) -> None:
        if not machine.is_current(generation):
            logger.info("Discarding connection from superseded attempt of %s", session.id)
            self._spawn(self._discard_handle(handler, result.handle))
            return

        session.handle = result.handle
        machine.apply(SessionEvent.SUCCESS, generation)
        if result.interactive:
            machine.apply(SessionEvent.READY, generation)

    async def _release_handle(self, session: Session) -> None:
        """Disconnect the handle a session holds, if any."""
        if session.handle is None:
            return
        if session.handler is not None:
            await session.handler.disconnect(session)
        session.handle = None

    async def _discard_handle(self, handler: ConnectionHandler, handle: Any) -> None:
        try:
            await handler.backend.disconnect(handle)
        except Exception as e:
            logger.warning("Failed to discard connection handle: %s", e)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Callbacks

    def _on_progress(self, session: Session, generation: int, progress: ChainProgress) -> None:
        machine = self._machines.get(session.id)
        if machine is None or not machine.is_current(generation):
            return
        session.log(progress.format())
        if progress.status == "authenticating" and progress.is_leaf:
            machine.apply(SessionEvent.AUTH_REQUIRED, generation)

    def _on_transition(
        self,
        session: Session,
        old: ConnectionState,
        new: ConnectionState,
        event: SessionEvent,
    ) -> None:
        if new.is_live and not old.is_live and session.handler is not None:
            self.heartbeat.start(session, session.handler, session.generation)
        elif old.is_live and not new.is_live:
            self.heartbeat.stop(session.id)

        if (
            new.is_failed
            and session.id in self._sessions
            and self.reconnect.should_retry(session.last_error)
        ):
            self.reconnect.attempt_reconnect(session)

        for observer in list(self._observers):
            try:
                observer(session, old, new, event)
            except Exception:
                logger.exception("Session observer failed")

    def _on_liveness_lost(self, session: Session, generation: int, reason: str) -> None:
        machine = self._machines.get(session.id)
        if machine is None or not session.state.is_live:
            return
        self._lose(session, machine, NetworkError(reason, host_id=session.host.id), generation)

    def _on_backend_event(self, event: BackendEvent) -> None:
        session = self._sessions.get(event.session_id)
        if session is None:
            return

        if event.type == "output":
            for listener in list(self._output_listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Output listener failed")
            return

        if event.handle is not None and event.handle != session.handle:
            logger.debug("Session %s: ignoring %s from a replaced handle", session.id, event.type)
            return

        if event.is_terminal and session.state.is_live:
            reason = event.reason or f"Remote session exited (status {event.exit_code})"
            logger.warning("Session %s: %s", session.id, reason)
            self._lose(
                session,
                self._machines[session.id],
                NetworkError(reason, host_id=session.host.id),
                session.generation,
            )

    def _lose(
        self,
        session: Session,
        machine: SessionStateMachine,
        error: EngineError,
        generation: int,
    ) -> None:
        """Liveness lost: drop the handle, go FAILED and let reconnect take over."""
        if not machine.is_current(generation):
            return
        handler, handle = session.handler, session.handle
        session.handle = None
        session.log(f"Error: {error.message}")
        machine.apply(SessionEvent.LIVENESS_LOST, generation, error=error)
        if handler is not None and handle is not None:
            self._spawn(self._discard_handle(handler, handle))

    def _on_reconnect_exhausted(self, session: Session, error: ReconnectExhaustedError) -> None:
        """Settle an exhausted session in FAILED until the user retries."""
        session.reconnect_exhausted = True
        machine = self._machines.get(session.id)
        if machine is None or not machine.apply(SessionEvent.EXHAUSTED, error=error):
            session.last_error = LastError.from_error(error)
