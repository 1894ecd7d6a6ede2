"""SSH config file parser.

Reads ~/.ssh/config and extracts host definitions, including ProxyJump
chains and ServerAliveInterval keepalives, with allowlist/blocklist
filtering.
"""

import logging
import os
import re
from fnmatch import fnmatch
from pathlib import Path

from tether_mcp.errors import ConfigurationError
from tether_mcp.models import AuthMethod, HostConfig, RetryPolicy

logger = logging.getLogger(__name__)


def parse_proxy_jump(value: str) -> tuple[str, ...]:
    """Split a ProxyJump value into host aliases.

    Accepts ``a,b`` as well as ``user@a:2222`` entries; user and port are
    dropped because the catalog entry of each alias is authoritative.

    Args:
        value: Raw ProxyJump directive value

    Returns:
        Ordered tuple of host ids (empty for ``none``)
    """
    if not value or value.strip().lower() == "none":
        return ()
    hops = []
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "@" in entry:
            entry = entry.split("@", 1)[1]
        if entry.count(":") == 1:
            entry = entry.split(":", 1)[0]
        hops.append(entry)
    return tuple(hops)


class SSHConfigParser:
    """Parser for SSH config files.

    Reads SSH config format and produces HostConfig snapshots.
    Supports allowlist/blocklist filtering with glob patterns.
    """

    def __init__(
        self,
        config_path: Path | str | None = None,
        allowlist: list[str] | None = None,
        blocklist: list[str] | None = None,
        default_keepalive: float = 30.0,
        default_retry_policy: RetryPolicy | None = None,
    ):
        """Initialize SSH config parser.

        Args:
            config_path: Path to SSH config file (default: ~/.ssh/config)
            allowlist: Only include hosts matching these patterns (if set)
            blocklist: Exclude hosts matching these patterns
            default_keepalive: Keepalive used when ServerAliveInterval is absent
            default_retry_policy: Retry policy assigned to every parsed host
        """
        if config_path is None:
            config_path = Path.home() / ".ssh" / "config"

        self.config_path = Path(config_path)
        self.allowlist = list(allowlist) if allowlist else None
        self.blocklist = list(blocklist) if blocklist else []
        self.default_keepalive = default_keepalive
        self.default_retry_policy = default_retry_policy or RetryPolicy()

    def parse(self) -> dict[str, HostConfig]:
        """Parse SSH config and return host definitions.

        Returns:
            Dictionary mapping host alias to HostConfig
        """
        if not self.config_path.exists():
            logger.warning("SSH config not found: %s", self.config_path)
            return {}

        try:
            content = self.config_path.read_text()
            logger.debug("Reading SSH config from %s", self.config_path)
        except (OSError, PermissionError) as e:
            logger.warning("Cannot read SSH config %s: %s", self.config_path, e)
            return {}

        hosts: dict[str, HostConfig] = {}
        current_host: str | None = None
        current_data: dict[str, str] = {}
        global_defaults: dict[str, str] = {}

        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            host_match = re.match(r"^Host\s+(\S+)", line, re.IGNORECASE)
            if host_match:
                self._store(hosts, current_host, current_data)
                current_host = host_match.group(1)
                # Wildcard blocks only contribute defaults
                if "*" in current_host or "?" in current_host:
                    current_host = "*"
                current_data = global_defaults.copy() if current_host != "*" else {}
                continue

            kv_match = re.match(r"^(\w+)\s*=?\s*(.+)$", line)
            if kv_match and current_host:
                key = kv_match.group(1).lower()
                value = kv_match.group(2).strip()
                if key == "identityfile":
                    value = os.path.expanduser(value)
                current_data[key] = value
                if current_host == "*":
                    global_defaults[key] = value

        self._store(hosts, current_host, current_data)

        logger.info("Parsed %d hosts from %s", len(hosts), self.config_path)
        return hosts

    def _store(
        self,
        hosts: dict[str, HostConfig],
        name: str | None,
        data: dict[str, str],
    ) -> None:
        """Convert a finished Host block and add it if allowed."""
        if not name or name == "*" or not data.get("hostname"):
            return
        if not self._is_host_allowed(name):
            logger.debug("Host %s filtered out by allow/block list", name)
            return
        try:
            hosts[name] = self._build_host(name, data)
        except ConfigurationError as e:
            logger.warning("Skipping host %s: %s", name, e)

    def _build_host(self, name: str, data: dict[str, str]) -> HostConfig:
        """Build a HostConfig from collected directives."""
        try:
            port = int(data.get("port", "22"))
        except ValueError:
            port = 22

        keepalive = self.default_keepalive
        if "serveraliveinterval" in data:
            try:
                keepalive = float(data["serveraliveinterval"])
            except ValueError:
                logger.warning(
                    "Invalid ServerAliveInterval for %s: %s",
                    name,
                    data["serveraliveinterval"],
                )

        chain = parse_proxy_jump(data.get("proxyjump", ""))
        if name in chain:
            logger.warning("Host %s lists itself in ProxyJump, ignoring that hop", name)
            chain = tuple(h for h in chain if h != name)

        identity_file = data.get("identityfile")
        return HostConfig(
            id=name,
            address=data.get("hostname", ""),
            port=port,
            username=data.get("user", "root"),
            auth_method=AuthMethod.IDENTITY_FILE if identity_file else AuthMethod.AGENT,
            identity_file=identity_file,
            chain=chain,
            keepalive_interval=keepalive,
            retry_policy=self.default_retry_policy,
        )

    def _is_host_allowed(self, name: str) -> bool:
        """Check if host passes allowlist/blocklist filters.

        Args:
            name: Host name to check

        Returns:
            True if host is allowed
        """
        # Allowlist takes precedence
        if self.allowlist:
            return any(fnmatch(name, pattern) for pattern in self.allowlist)

        if self.blocklist:
            return not any(fnmatch(name, pattern) for pattern in self.blocklist)

        return True
