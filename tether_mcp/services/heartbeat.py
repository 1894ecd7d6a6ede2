"""Per-session heartbeat probing.

Detects zombie connections: one asyncio task per live session probes the
handler every ``keepalive_interval`` seconds. When the consecutive failure
budget is spent the task removes itself and reports liveness loss exactly
once; the next episode needs a fresh ``start``.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tether_mcp.models import Liveness, Session

if TYPE_CHECKING:
    from tether_mcp.services.handlers import ConnectionHandler

logger = logging.getLogger(__name__)

LivenessLostCallback = Callable[[Session, int, str], None]


@dataclass
class HeartbeatState:
    """Probe bookkeeping for one session."""

    session_id: str
    generation: int
    interval: float
    consecutive_failures: int = 0
    last_probe_at: float | None = None
    last_ok_at: float | None = None
    task: "asyncio.Task[None] | None" = field(default=None, repr=False)


class HeartbeatMonitor:
    """Runs liveness probes for live sessions."""

    def __init__(
        self,
        on_liveness_lost: LivenessLostCallback,
        probe_timeout: float = 10.0,
        max_failures: int = 1,
    ) -> None:
        """Initialize heartbeat monitor.

        Args:
            on_liveness_lost: Called as (session, generation, reason) once per episode
            probe_timeout: Seconds before an unanswered probe counts as failed
            max_failures: Consecutive failed probes that mean the session is dead
        """
        if max_failures < 1:
            raise ValueError(f"max_failures must be >= 1, got {max_failures}")
        self._on_liveness_lost = on_liveness_lost
        self.probe_timeout = probe_timeout
        self.max_failures = max_failures
        self._states: dict[str, HeartbeatState] = {}

    def start(self, session: Session, handler: "ConnectionHandler", generation: int) -> bool:
        """Start probing a session.

        Returns:
            False if already running or the host disables keepalives
        """
        if session.id in self._states:
            logger.debug("Heartbeat already running for session %s", session.id)
            return False

        interval = session.host.keepalive_interval
        if interval <= 0:
            logger.debug("Keepalive disabled for session %s", session.id)
            return False

        state = HeartbeatState(
            session_id=session.id,
            generation=generation,
            interval=interval,
            last_ok_at=time.monotonic(),
        )
        state.task = asyncio.create_task(
            self._run(state, session, handler), name=f"heartbeat-{session.id}"
        )
        self._states[session.id] = state
        logger.info(
            "Heartbeat started for session %s (interval=%.1fs, timeout=%.1fs)",
            session.id,
            interval,
            self.probe_timeout,
        )
        return True

    def stop(self, session_id: str) -> None:
        """Stop probing a session. Unknown ids are ignored."""
        state = self._states.pop(session_id, None)
        if state is None:
            return
        if state.task and not state.task.done() and state.task is not asyncio.current_task():
            state.task.cancel()
        logger.debug("Heartbeat stopped for session %s", session_id)

    def stop_all(self) -> None:
        """Stop every heartbeat."""
        if self._states:
            logger.info("Stopping %d heartbeat(s)", len(self._states))
        for session_id in list(self._states):
            self.stop(session_id)

    def is_running(self, session_id: str) -> bool:
        """True while a heartbeat task exists for the session."""
        return session_id in self._states

    def get_state(self, session_id: str) -> HeartbeatState | None:
        """Probe bookkeeping for a session, or None."""
        return self._states.get(session_id)

    async def _run(
        self, state: HeartbeatState, session: Session, handler: "ConnectionHandler"
    ) -> None:
        while True:
            await asyncio.sleep(state.interval)
            state.last_probe_at = time.monotonic()
            alive, reason = await self._probe_once(session, handler)

            if alive:
                if state.consecutive_failures:
                    logger.info("Heartbeat recovered for session %s", session.id)
                state.consecutive_failures = 0
                state.last_ok_at = state.last_probe_at
                logger.debug("Ping OK for session %s", session.id)
                continue

            state.consecutive_failures += 1
            logger.warning(
                "Heartbeat failed for session %s: %s (%d/%d)",
                session.id,
                reason,
                state.consecutive_failures,
                self.max_failures,
            )
            if state.consecutive_failures >= self.max_failures:
                if self._states.get(session.id) is state:
                    del self._states[session.id]
                logger.error(
                    "Session %s appears dead, reporting liveness loss", session.id
                )
                self._on_liveness_lost(session, state.generation, reason)
                return

    async def _probe_once(
        self, session: Session, handler: "ConnectionHandler"
    ) -> tuple[bool, str]:
        try:
            result = await asyncio.wait_for(handler.probe(session), self.probe_timeout)
        except TimeoutError:
            return False, "Connection lost (heartbeat timeout)"
        if result is Liveness.ALIVE:
            return True, ""
        return False, "Connection lost (probe reported dead)"
