"""Host connectivity tracking.

The monitor is the only component that reads raw connectivity. It polls a
few well-known TCP endpoints and treats the machine as online while any of
them is reachable. Everything else asks the monitor instead of probing.

The instance is created by the composition root and injected where
needed; it lives as long as the server.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from tether_mcp.utils.ping import any_host_online

logger = logging.getLogger(__name__)

ConnectivityProbe = Callable[[], Awaitable[bool]]
NetworkListener = Callable[[bool], None]


class NetworkStateMonitor:
    """Online/offline status with async waiters and change subscriptions."""

    def __init__(
        self,
        targets: dict[str, tuple[str, int]] | None = None,
        poll_interval: float = 5.0,
        probe_timeout: float = 2.0,
        probe: ConnectivityProbe | None = None,
    ) -> None:
        """Initialize network monitor.

        Args:
            targets: {name: (host, port)} endpoints to probe
            poll_interval: Seconds between connectivity probes
            probe_timeout: TCP connect timeout per target
            probe: Replacement connectivity check (tests, platform hooks)
        """
        self.targets = targets or {"1.1.1.1:53": ("1.1.1.1", 53)}
        self.poll_interval = poll_interval
        self.probe_timeout = probe_timeout
        self._probe = probe or self._probe_targets
        self._online = True
        self._online_event = asyncio.Event()
        self._online_event.set()
        self._offline_event = asyncio.Event()
        self._listeners: set[NetworkListener] = set()
        self._poll_task: asyncio.Task[Any] | None = None

    async def start(self) -> None:
        """Take a first reading and start polling. Idempotent."""
        if self._poll_task is not None and not self._poll_task.done():
            return
        await self.refresh()
        self._poll_task = asyncio.create_task(self._poll_loop(), name="network-monitor")
        logger.info(
            "Network monitor started (online=%s, interval=%.1fs, targets=%s)",
            self._online,
            self.poll_interval,
            ", ".join(self.targets),
        )

    async def stop(self) -> None:
        """Stop polling and release waiters' subscriptions."""
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None
        self._listeners.clear()
        logger.debug("Network monitor stopped")

    @property
    def is_running(self) -> bool:
        """True while the poll task is active."""
        return self._poll_task is not None and not self._poll_task.done()

    def is_online(self) -> bool:
        """Last known connectivity (optimistic before the first reading)."""
        return self._online

    async def wait_for_online(self, timeout: float) -> bool:
        """Wait until connectivity returns.

        Args:
            timeout: Maximum seconds to wait

        Returns:
            True if online (immediately or on restoration), False on timeout
        """
        if self._online:
            return True
        logger.debug("Waiting up to %.1fs for network restoration", timeout)
        try:
            await asyncio.wait_for(self._online_event.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def wait_for_offline(self, timeout: float) -> bool:
        """Wait until connectivity drops.

        Returns:
            True if the network went offline before the timeout
        """
        if not self._online:
            return True
        try:
            await asyncio.wait_for(self._offline_event.wait(), timeout)
        except TimeoutError:
            return False
        return True

    def subscribe(self, callback: NetworkListener) -> Callable[[], None]:
        """Call ``callback(is_online)`` on every change.

        Returns:
            Unsubscribe function
        """
        self._listeners.add(callback)
        return lambda: self._listeners.discard(callback)

    async def refresh(self) -> bool:
        """Probe connectivity once and apply the result."""
        try:
            online = await self._probe()
        except Exception as e:
            logger.warning("Connectivity probe failed: %s", e)
            online = False
        if online:
            self._handle_online()
        else:
            self._handle_offline()
        return online

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.refresh()

    async def _probe_targets(self) -> bool:
        return await any_host_online(self.targets, timeout=self.probe_timeout)

    def _handle_online(self) -> None:
        if self._online:
            return
        self._online = True
        self._offline_event.clear()
        self._online_event.set()
        logger.info("Network connectivity restored")
        self._notify(True)

    def _handle_offline(self) -> None:
        if not self._online:
            return
        self._online = False
        self._online_event.clear()
        self._offline_event.set()
        logger.warning("Network connectivity lost")
        self._notify(False)

    def _notify(self, online: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Network listener failed")
