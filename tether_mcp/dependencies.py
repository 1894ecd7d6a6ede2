"""Dependency injection container for Tether MCP.

The composition root: every long-lived service is constructed here, once,
and handed to whatever needs it.
"""

import logging
from dataclasses import dataclass

from tether_mcp.config import Config
from tether_mcp.services.backend import AsyncsshBackend
from tether_mcp.services.catalog import HostCatalog, Keychain
from tether_mcp.services.engine import ConnectionEngine
from tether_mcp.services.network import NetworkStateMonitor

logger = logging.getLogger(__name__)


@dataclass
class Dependencies:
    """Container for Tether MCP services.

    Example:
        deps = Dependencies.create()
        await deps.start()
        snapshot = await deps.engine.connect("web")
    """

    config: Config
    catalog: HostCatalog
    keychain: Keychain
    network: NetworkStateMonitor
    backend: AsyncsshBackend
    engine: ConnectionEngine

    @classmethod
    def create(cls) -> "Dependencies":
        """Create dependencies from environment configuration."""
        return cls.from_config(Config.from_env())

    @classmethod
    def from_config(
        cls,
        config: Config,
        keychain: Keychain | None = None,
        network: NetworkStateMonitor | None = None,
        backend: AsyncsshBackend | None = None,
    ) -> "Dependencies":
        """Create dependencies from a Config.

        Args:
            config: Configuration to build services from
            keychain: Stored keys (default: empty keychain)
            network: Network monitor override
            backend: Backend override

        Returns:
            Dependencies with the host catalog loaded from the SSH config
        """
        settings = config.settings
        catalog = HostCatalog(config.get_hosts().values())
        keychain = keychain or Keychain()
        network = network or NetworkStateMonitor(
            targets=settings.probe_targets(),
            poll_interval=settings.network_poll_interval,
            probe_timeout=settings.network_probe_timeout,
        )
        backend = backend or AsyncsshBackend(host_keys=config.host_keys)
        engine = ConnectionEngine(
            backend=backend,
            catalog=catalog,
            keychain=keychain,
            network=network,
            settings=settings,
        )
        return cls(
            config=config,
            catalog=catalog,
            keychain=keychain,
            network=network,
            backend=backend,
            engine=engine,
        )

    def reload_hosts(self) -> int:
        """Re-read the SSH config into the catalog.

        Hosts that disappeared are removed; open sessions keep their last
        snapshot until their next attempt.

        Returns:
            Number of hosts now in the catalog
        """
        hosts = self.config.reload_hosts()
        for host_config in self.catalog.list():
            if host_config.id not in hosts:
                self.catalog.remove(host_config.id)
        for host_config in hosts.values():
            self.catalog.put(host_config)
        logger.info("Reloaded %d host(s) from SSH config", len(self.catalog))
        return len(self.catalog)

    async def start(self) -> None:
        """Start process-lifetime services."""
        await self.network.start()

    async def cleanup(self) -> None:
        """Close all sessions and stop background services."""
        await self.engine.shutdown()
        await self.network.stop()
