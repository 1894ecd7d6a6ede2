"""Application configuration.

Delegates to specialized components:
- SSHConfigParser: Reads ~/.ssh/config into host snapshots
- HostKeyVerifier: Manages known_hosts
- Settings: Environment variables
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from tether_mcp.config.host_keys import HostKeyVerifier
from tether_mcp.config.parser import SSHConfigParser
from tether_mcp.config.settings import Settings
from tether_mcp.models import HostConfig

logger = logging.getLogger(__name__)


def _split_env_list(key: str) -> list[str] | None:
    value = os.getenv(key, "").strip()
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Config:
    """Application configuration.

    Aggregates settings from SSH config, known_hosts, and environment.
    """

    settings: Settings
    parser: SSHConfigParser
    host_keys: HostKeyVerifier
    _hosts_cache: dict[str, HostConfig] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment.

        Returns:
            Configured instance with all components initialized
        """
        settings = Settings.from_env()
        parser = SSHConfigParser(
            config_path=os.getenv("TETHER_SSH_CONFIG") or None,
            allowlist=_split_env_list("TETHER_ALLOWLIST"),
            blocklist=_split_env_list("TETHER_BLOCKLIST"),
            default_keepalive=settings.keepalive_interval,
            default_retry_policy=settings.default_retry_policy(),
        )
        return cls(
            settings=settings,
            parser=parser,
            host_keys=HostKeyVerifier.from_env(),
        )

    @classmethod
    def from_ssh_config(
        cls,
        ssh_config_path: Path | str | None = None,
        settings: Settings | None = None,
        known_hosts_path: str | None = "none",
    ) -> "Config":
        """Create config from an explicit SSH config path.

        Args:
            ssh_config_path: Path to SSH config file
            settings: Settings to use (default: from environment)
            known_hosts_path: known_hosts path, 'none' disables verification

        Returns:
            Configured instance
        """
        settings = settings or Settings.from_env()
        parser = SSHConfigParser(
            config_path=ssh_config_path,
            default_keepalive=settings.keepalive_interval,
            default_retry_policy=settings.default_retry_policy(),
        )
        host_keys = HostKeyVerifier(known_hosts_path=known_hosts_path, strict_checking=False)
        return cls(settings=settings, parser=parser, host_keys=host_keys)

    def get_hosts(self) -> dict[str, HostConfig]:
        """Get hosts from SSH config.

        Lazy loads and caches hosts on first call.
        """
        if not self._hosts_cache:
            self._hosts_cache = self.parser.parse()
        return self._hosts_cache

    def reload_hosts(self) -> dict[str, HostConfig]:
        """Drop the cache and parse the SSH config again."""
        self._hosts_cache = {}
        return self.get_hosts()

    def get_host(self, name: str) -> HostConfig | None:
        """Get host by name."""
        return self.get_hosts().get(name)

    # Delegate to settings for convenience
    @property
    def transport(self) -> str:
        """Transport type (http or stdio)."""
        return self.settings.transport

    @property
    def http_host(self) -> str:
        """HTTP server bind address."""
        return self.settings.http_host

    @property
    def http_port(self) -> int:
        """HTTP server port."""
        return self.settings.http_port

    @property
    def known_hosts_path(self) -> str | None:
        """Path to known_hosts file or None if disabled."""
        return self.host_keys.get_known_hosts_path()
