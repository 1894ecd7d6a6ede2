"""In-memory host catalog and keychain.

The catalog is the engine's view of the host collaborator: it hands out
immutable ``HostConfig`` snapshots and never persists anything itself.
"""

import logging
from collections.abc import Iterable

from tether_mcp.models import HostConfig

logger = logging.getLogger(__name__)


class HostCatalog:
    """Host snapshots keyed by host id."""

    def __init__(self, hosts: Iterable[HostConfig] = ()) -> None:
        self._hosts: dict[str, HostConfig] = {}
        for host in hosts:
            self.put(host)

    def get(self, host_id: str) -> HostConfig | None:
        """Return the current snapshot of a host, or None."""
        return self._hosts.get(host_id)

    def put(self, host: HostConfig) -> None:
        """Add or replace a host snapshot."""
        replaced = host.id in self._hosts
        self._hosts[host.id] = host
        logger.debug("%s host %s (%s)", "Updated" if replaced else "Added", host.id, host.endpoint)

    def remove(self, host_id: str) -> None:
        """Remove a host. Missing ids are ignored."""
        if self._hosts.pop(host_id, None) is not None:
            logger.debug("Removed host %s", host_id)

    def list(self) -> list[HostConfig]:
        """All hosts, sorted by id."""
        return [self._hosts[name] for name in sorted(self._hosts)]

    def __contains__(self, host_id: object) -> bool:
        return host_id in self._hosts

    def __len__(self) -> int:
        return len(self._hosts)


class Keychain:
    """Stored private keys referenced by ``HostConfig.key_id``.

    Storage encryption is the host collaborator's concern; this only keeps
    key text in memory for the resolver to materialize.
    """

    def __init__(self, keys: dict[str, str] | None = None) -> None:
        self._keys: dict[str, str] = dict(keys or {})

    def add(self, key_id: str, private_key: str) -> None:
        """Store a private key."""
        self._keys[key_id] = private_key

    def remove(self, key_id: str) -> None:
        """Forget a private key."""
        self._keys.pop(key_id, None)

    def get_private_key(self, key_id: str) -> str | None:
        """Return key text, or None if unknown."""
        return self._keys.get(key_id)

    def __len__(self) -> int:
        return len(self._keys)
