"""Resolved chain data models."""

from dataclasses import dataclass, field

from tether_mcp.models.host import AuthMethod


@dataclass(frozen=True)
class Hop:
    """One concrete node of a connection chain."""

    host_id: str
    address: str
    port: int
    username: str
    auth_method: AuthMethod
    key_path: str | None = None
    password: str | None = field(default=None, repr=False)
    working_directory: str | None = None

    @property
    def endpoint(self) -> str:
        """user@address:port string for logs."""
        return f"{self.username}@{self.address}:{self.port}"


@dataclass(frozen=True)
class ChainProgress:
    """Progress report for one hop while a chain is being connected."""

    hop_index: int
    total_hops: int
    host_id: str
    status: str  # connecting | authenticating | connected | failed
    message: str = ""

    @property
    def is_leaf(self) -> bool:
        """True when the report concerns the final hop."""
        return self.hop_index == self.total_hops - 1

    def format(self) -> str:
        """Render as a connection log line."""
        return f"[{self.hop_index + 1}/{self.total_hops}] {self.status}: {self.message}"
