"""Per-session connection state machine.

The machine is the only writer of ``Session.state``. It never raises:
edges that are not in the transition table and events tagged with a
superseded generation are logged and dropped.

Transitions run synchronously on the event loop, so two flows can never
interleave inside one transition. Listeners are notified in order after
the state has been written.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from tether_mcp.errors import EngineError
from tether_mcp.models import ConnectionState, LastError, Session

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    """Inputs that drive a session between states."""

    CONNECT = "connect"
    AUTH_REQUIRED = "auth-required"
    SUCCESS = "success"
    READY = "ready"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    LIVENESS_LOST = "liveness-lost"
    CANCEL = "user-cancel"
    RETRY = "retry"
    EXHAUSTED = "reconnect-exhausted"


S = ConnectionState
E = SessionEvent

TRANSITIONS: dict[tuple[ConnectionState, SessionEvent], ConnectionState] = {
    (S.DISCONNECTED, E.CONNECT): S.CONNECTING,
    (S.CONNECTING, E.AUTH_REQUIRED): S.AUTHENTICATING,
    (S.CONNECTING, E.SUCCESS): S.CONNECTED,
    (S.AUTHENTICATING, E.SUCCESS): S.CONNECTED,
    (S.CONNECTED, E.READY): S.READY,
    (S.CONNECTING, E.FAILURE): S.FAILED,
    (S.AUTHENTICATING, E.FAILURE): S.FAILED,
    (S.CONNECTING, E.TIMEOUT): S.TIMEOUT,
    (S.CONNECTED, E.LIVENESS_LOST): S.FAILED,
    (S.READY, E.LIVENESS_LOST): S.FAILED,
    (S.FAILED, E.RETRY): S.CONNECTING,
    (S.TIMEOUT, E.RETRY): S.CONNECTING,
    (S.FAILED, E.EXHAUSTED): S.FAILED,
    (S.TIMEOUT, E.EXHAUSTED): S.FAILED,
}

TransitionListener = Callable[[Session, ConnectionState, ConnectionState, SessionEvent], None]


class SessionStateMachine:
    """Owns the state and generation counter of one session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._listeners: list[TransitionListener] = []

    @property
    def state(self) -> ConnectionState:
        """Current state."""
        return self.session.state

    @property
    def generation(self) -> int:
        """Current attempt generation."""
        return self.session.generation

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback run after every applied transition."""
        self._listeners.append(listener)

    def begin_attempt(self) -> int:
        """Start a new attempt generation and return it."""
        self.session.generation += 1
        return self.session.generation

    def invalidate(self) -> int:
        """Supersede every outstanding attempt without starting a new one."""
        self.session.generation += 1
        logger.debug(
            "Session %s invalidated, generation now %d",
            self.session.id,
            self.session.generation,
        )
        return self.session.generation

    def is_current(self, generation: int) -> bool:
        """True if results of ``generation`` may still be applied."""
        return generation == self.session.generation

    def target(self, event: SessionEvent) -> ConnectionState | None:
        """State ``event`` would lead to, or None if there is no edge."""
        if event is SessionEvent.CANCEL:
            return ConnectionState.DISCONNECTED
        return TRANSITIONS.get((self.session.state, event))

    def can_apply(self, event: SessionEvent) -> bool:
        """True if ``event`` has an edge from the current state."""
        return self.target(event) is not None

    def apply(
        self,
        event: SessionEvent,
        generation: int | None = None,
        error: EngineError | None = None,
    ) -> bool:
        """Apply an event.

        Args:
            event: Event to apply
            generation: Attempt generation the event belongs to (None = current)
            error: Normalized error to record as last_error

        Returns:
            True if the transition happened
        """
        session = self.session
        if generation is not None and generation != session.generation:
            logger.debug(
                "Session %s: dropping stale %s (generation %d, current %d)",
                session.id,
                event.value,
                generation,
                session.generation,
            )
            return False

        new = self.target(event)
        if new is None:
            logger.warning(
                "Session %s: no transition for %s in state %s, ignoring",
                session.id,
                event.value,
                session.state.value,
            )
            return False

        old = session.state
        session.state = new
        if error is not None:
            session.last_error = LastError.from_error(error)
        elif event in (SessionEvent.SUCCESS, SessionEvent.CANCEL):
            session.last_error = None
        if new is ConnectionState.CONNECTED:
            session.connected_at = datetime.now()

        session.log(f"{old.value} -> {new.value} ({event.value})")
        logger.info(
            "Session %s [%s]: %s -> %s (%s)",
            session.id,
            session.host.id,
            old.value,
            new.value,
            event.value,
        )

        for listener in list(self._listeners):
            try:
                listener(session, old, new, event)
            except Exception:
                logger.exception("Transition listener failed for session %s", session.id)
        return True
