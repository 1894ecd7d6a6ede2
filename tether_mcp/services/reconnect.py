"""Automatic reconnection with backoff.

One loop task per session at most. Each iteration:

1. Wait for the network while offline (no attempt slot is spent)
2. Back off ``min(base_delay * 2**attempts, max_delay)`` seconds; if the
   network drops mid-wait, wait for it and then only the remaining delay
3. Run a fresh connect attempt through the engine
4. Stop on success, on a non-retriable error, when the attempt budget is
   spent, or when ``max_total_time`` has elapsed

Cancellation is observed at every suspension point. Once cancelled, a loop
never calls ``connect`` again.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from tether_mcp.errors import EngineError, ErrorKind, ReconnectExhaustedError
from tether_mcp.models import LastError, ReconnectState, Session

if TYPE_CHECKING:
    from tether_mcp.config import Settings
    from tether_mcp.services.network import NetworkStateMonitor

logger = logging.getLogger(__name__)

ConnectAttempt = Callable[[Session], Awaitable[EngineError | None]]
ExhaustedCallback = Callable[[Session, ReconnectExhaustedError], None]


class ReconnectEngine:
    """Schedules reconnect loops for failed sessions."""

    def __init__(
        self,
        network: "NetworkStateMonitor",
        connect: ConnectAttempt,
        settings: "Settings",
        on_exhausted: ExhaustedCallback | None = None,
    ) -> None:
        """Initialize reconnect engine.

        Args:
            network: Connectivity source used to gate attempts
            connect: Fresh-attempt coroutine; returns None on success
                (or when superseded) and the normalized error otherwise
            settings: Global reconnect settings
            on_exhausted: Called once when a loop runs out of budget
        """
        self.network = network
        self._connect = connect
        self.settings = settings
        self._on_exhausted = on_exhausted
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._states: dict[str, ReconnectState] = {}

    def should_retry(self, error: EngineError | LastError | None) -> bool:
        """Whether an error may be retried automatically.

        Authentication rejections follow ``retry_auth_failures``; every
        other error uses its own ``retriable`` flag.
        """
        if error is None:
            return False
        if error.kind is ErrorKind.AUTHENTICATION:
            return self.settings.retry_auth_failures
        return error.retriable

    def attempt_reconnect(self, session: Session) -> bool:
        """Start a reconnect loop for a session.

        Returns:
            False if a loop is already active or policy disables reconnects
        """
        if session.id in self._tasks:
            logger.debug("Reconnect already in progress for session %s", session.id)
            return False

        policy = session.host.retry_policy
        if not (self.settings.auto_reconnect and policy.auto_reconnect):
            logger.debug("Auto-reconnect disabled for session %s", session.id)
            return False
        if policy.max_attempts <= 0:
            return False

        loop = asyncio.get_running_loop()
        state = ReconnectState(session_id=session.id, started_at=loop.time())
        session.reconnect_attempt_count = 0
        session.reconnect_exhausted = False
        self._states[session.id] = state
        self._tasks[session.id] = asyncio.create_task(
            self._run(session, state), name=f"reconnect-{session.id}"
        )
        logger.info(
            "Auto-reconnect started for session %s [%s] (max_attempts=%d)",
            session.id,
            session.host.id,
            policy.max_attempts,
        )
        return True

    async def cancel_reconnect(self, session_id: str) -> bool:
        """Cancel a session's loop and wait for it to unwind.

        Returns:
            True if a loop was running
        """
        task = self._tasks.pop(session_id, None)
        state = self._states.pop(session_id, None)
        if state is not None:
            state.cancelled = True
            state.is_reconnecting = False
        if task is None:
            return False

        if not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})
        logger.info("Auto-reconnect cancelled for session %s", session_id)
        return True

    async def cancel_all(self) -> None:
        """Cancel every loop."""
        if self._tasks:
            logger.info("Cancelling %d reconnect loop(s)", len(self._tasks))
        for session_id in list(self._tasks):
            await self.cancel_reconnect(session_id)

    def is_reconnecting(self, session_id: str) -> bool:
        """True while a loop is active for the session."""
        state = self._states.get(session_id)
        return state is not None and state.is_reconnecting

    def get_state(self, session_id: str) -> ReconnectState | None:
        """Loop bookkeeping for a session, or None."""
        return self._states.get(session_id)

    @property
    def active_sessions(self) -> list[str]:
        """Session ids with an active loop."""
        return list(self._tasks)

    async def _run(self, session: Session, state: ReconnectState) -> None:
        policy = session.host.retry_policy
        deadline = state.started_at + self.settings.max_total_time
        last_error: EngineError | None = None
        try:
            while state.attempt_count < policy.max_attempts:
                if not await self._wait_online(session, deadline):
                    break

                delay = policy.delay_for(state.attempt_count)
                state.next_delay = delay
                logger.info(
                    "Reconnecting session %s in %.1fs (attempt %d/%d)",
                    session.id,
                    delay,
                    state.attempt_count + 1,
                    policy.max_attempts,
                )
                if not await self._backoff(session, delay, deadline):
                    break
                if self._expired(deadline):
                    break

                session.log(
                    f"Reconnect attempt {state.attempt_count + 1}/{policy.max_attempts}"
                )
                error = await self._connect(session)
                if error is None:
                    logger.info(
                        "Session %s reconnected after %d failed attempt(s)",
                        session.id,
                        state.attempt_count,
                    )
                    session.reconnect_attempt_count = 0
                    session.reconnect_exhausted = False
                    return

                state.attempt_count += 1
                session.reconnect_attempt_count = state.attempt_count
                last_error = error
                logger.warning(
                    "Reconnect attempt %d/%d for session %s failed: %s",
                    state.attempt_count,
                    policy.max_attempts,
                    session.id,
                    error.message,
                )
                if not self.should_retry(error):
                    logger.warning(
                        "Session %s: %s error is not retriable, giving up",
                        session.id,
                        error.kind.value,
                    )
                    return

            self._give_up(session, state, last_error)
        finally:
            state.is_reconnecting = False
            if self._tasks.get(session.id) is asyncio.current_task():
                del self._tasks[session.id]
                self._states.pop(session.id, None)

    async def _wait_online(self, session: Session, deadline: float) -> bool:
        """Block while offline. False once the total time budget is spent."""
        while not self.network.is_online():
            budget = min(self.settings.offline_wait, self._remaining(deadline))
            if budget <= 0:
                return False
            logger.info(
                "Network offline, session %s waiting up to %.1fs", session.id, budget
            )
            await self.network.wait_for_online(budget)
        return True

    async def _backoff(self, session: Session, delay: float, deadline: float) -> bool:
        """Sleep ``delay`` seconds of online time.

        Returns:
            False if the total time budget ran out while offline
        """
        loop = asyncio.get_running_loop()
        remaining = delay
        while remaining > 0:
            started = loop.time()
            went_offline = await self.network.wait_for_offline(remaining)
            remaining -= loop.time() - started
            if not went_offline:
                break
            logger.info(
                "Network dropped during backoff for session %s (%.1fs remaining)",
                session.id,
                max(remaining, 0.0),
            )
            if not await self._wait_online(session, deadline):
                return False
        return True

    def _give_up(
        self, session: Session, state: ReconnectState, last_error: EngineError | None
    ) -> None:
        error = ReconnectExhaustedError(
            state.attempt_count, last_error=last_error, host_id=session.host.id
        )
        logger.error("Session %s: %s", session.id, error.message)
        session.log(error.message)
        state.is_reconnecting = False
        if self._on_exhausted is not None:
            self._on_exhausted(session, error)

    def _remaining(self, deadline: float) -> float:
        return deadline - asyncio.get_running_loop().time()

    def _expired(self, deadline: float) -> bool:
        return self._remaining(deadline) <= 0
