"""Chain resolution with ephemeral credential material.

A chain is resolved fresh for every connect attempt:

1. Cycle check on the raw ids (no lookups, no IO)
2. Catalog lookups strictly left-to-right, leaf appended last
3. Key material written for hops that use stored keys

Material belongs to the ResolvedChain that created it. If anything fails
part-way, everything written so far by that call is destroyed before the
error propagates. On success the caller owns cleanup and must run it after
the connect attempt finishes, because the backend reads the key files
while connecting.
"""

import asyncio
import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tether_mcp.errors import (
    CredentialMaterializationError,
    CycleDetectedError,
    UnknownHostError,
)
from tether_mcp.models import AuthMethod, HostConfig, Hop
from tether_mcp.protocols import HostLookup, KeySource

logger = logging.getLogger(__name__)


def _write_key_file(path: Path, private_key: str) -> None:
    """Write key text to a new 0600 file inside a 0700 directory."""
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(private_key)
        if not private_key.endswith("\n"):
            f.write("\n")


@dataclass
class CredentialMaterial:
    """A temporary key file for one hop."""

    hop: str
    path: Path
    destroyed: bool = False

    def destroy(self) -> None:
        """Remove the key file. Idempotent."""
        if self.destroyed:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Cannot remove temp key %s for %s: %s", self.path, self.hop, e)
        self.destroyed = True


class ResolvedChain:
    """Concrete hops for one attempt, leaf last."""

    def __init__(self, hops: Sequence[Hop], materials: Sequence[CredentialMaterial] = ()):
        self._hops = tuple(hops)
        self._materials = list(materials)

    @property
    def hops(self) -> tuple[Hop, ...]:
        """All hops in connection order."""
        return self._hops

    @property
    def jumps(self) -> tuple[Hop, ...]:
        """Hops before the leaf."""
        return self._hops[:-1]

    @property
    def leaf(self) -> Hop:
        """The final, user-intended destination."""
        return self._hops[-1]

    @property
    def host_ids(self) -> list[str]:
        """Host ids in connection order."""
        return [hop.host_id for hop in self._hops]

    @property
    def key_paths(self) -> list[str]:
        """Paths of live temporary key files."""
        return [str(m.path) for m in self._materials if not m.destroyed]

    @property
    def is_cleaned_up(self) -> bool:
        """True once every piece of material has been destroyed."""
        return all(m.destroyed for m in self._materials)

    def cleanup(self) -> None:
        """Destroy all material. Safe to call any number of times."""
        for material in self._materials:
            material.destroy()

    def __iter__(self) -> Iterator[Hop]:
        return iter(self._hops)

    def __len__(self) -> int:
        return len(self._hops)

    async def __aenter__(self) -> "ResolvedChain":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"ResolvedChain({' -> '.join(self.host_ids)})"


class ChainResolver:
    """Turns stored chain ids plus a leaf host into a ResolvedChain."""

    def __init__(
        self,
        catalog: HostLookup,
        keychain: KeySource,
        key_dir: str | Path | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            catalog: Host lookup used for jump hosts
            keychain: Source of stored private keys
            key_dir: Directory for temp keys (default: private mkdtemp dir)
        """
        self._catalog = catalog
        self._keychain = keychain
        self._key_dir = Path(key_dir) if key_dir else None
        self._owns_key_dir = False

    @property
    def key_dir(self) -> Path:
        """Directory temp keys are written to, created on first use."""
        if self._key_dir is None:
            self._key_dir = Path(tempfile.mkdtemp(prefix="tether-keys-"))
            self._owns_key_dir = True
            logger.debug("Created private key directory %s", self._key_dir)
        return self._key_dir

    async def resolve(self, chain_ids: Sequence[str], leaf: HostConfig) -> ResolvedChain:
        """Resolve a chain for one connect attempt.

        Args:
            chain_ids: Ordered jump host ids (leaf excluded)
            leaf: Destination host

        Returns:
            ResolvedChain with hops in order, leaf last

        Raises:
            CycleDetectedError: If a host appears twice (leaf included)
            UnknownHostError: If a jump host is not in the catalog
            CredentialMaterializationError: If key material cannot be written
        """
        ids = list(chain_ids)
        self._check_cycles(ids, leaf.id)

        hosts: list[HostConfig] = []
        for host_id in ids:
            host = self._catalog.get(host_id)
            if host is None:
                raise UnknownHostError(host_id)
            hosts.append(host)
        hosts.append(leaf)

        hops: list[Hop] = []
        materials: list[CredentialMaterial] = []
        try:
            for host in hosts:
                key_path: str | None = None
                if host.auth_method is AuthMethod.KEY:
                    material = await self._materialize(host, materials)
                    key_path = str(material.path)
                elif host.auth_method is AuthMethod.IDENTITY_FILE:
                    key_path = host.identity_file
                hops.append(
                    Hop(
                        host_id=host.id,
                        address=host.address,
                        port=host.port,
                        username=host.username,
                        auth_method=host.auth_method,
                        key_path=key_path,
                        password=host.password,
                        working_directory=host.working_directory,
                    )
                )
        except BaseException:
            for material in materials:
                material.destroy()
            if materials:
                logger.info(
                    "Chain resolution for %s aborted, destroyed %d temp key(s)",
                    leaf.id,
                    len(materials),
                )
            raise

        chain = ResolvedChain(hops, materials)
        logger.debug("Resolved %r (%d temp key(s))", chain, len(materials))
        return chain

    @staticmethod
    def _check_cycles(chain_ids: list[str], leaf_id: str) -> None:
        seen: set[str] = set()
        full = [*chain_ids, leaf_id]
        for host_id in full:
            if host_id in seen:
                raise CycleDetectedError(host_id, full)
            seen.add(host_id)

    async def _materialize(
        self, host: HostConfig, materials: list[CredentialMaterial]
    ) -> CredentialMaterial:
        """Write the stored key of a hop to a temp file.

        The material is registered in ``materials`` before the write starts
        so a failure or cancellation mid-write still cleans it up.
        """
        private_key = self._keychain.get_private_key(host.key_id or "")
        if private_key is None:
            raise CredentialMaterializationError(
                host.id, f"SSH key {host.key_id!r} not found in keychain"
            )

        path = self.key_dir / f"{host.id}-{uuid.uuid4().hex}.key"
        material = CredentialMaterial(hop=host.id, path=path)
        materials.append(material)

        write = asyncio.ensure_future(asyncio.to_thread(_write_key_file, path, private_key))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            # Let the thread finish so cleanup does not race the write
            await asyncio.wait({write})
            raise
        except OSError as e:
            raise CredentialMaterializationError(host.id, e) from e

        logger.debug("Materialized temp key for %s at %s", host.id, path)
        return material

    def close(self) -> None:
        """Remove the private key directory if this resolver created it."""
        if self._owns_key_dir and self._key_dir is not None:
            shutil.rmtree(self._key_dir, ignore_errors=True)
            logger.debug("Removed private key directory %s", self._key_dir)
            self._key_dir = None
            self._owns_key_dir = False
