"""Host configuration data models."""

from dataclasses import dataclass, field
from enum import Enum

from tether_mcp.errors import ConfigurationError, UnsupportedConnectionKindError


class ConnectionKind(str, Enum):
    """Kind of connection a host is opened with."""

    SHELL = "shell"
    FILE_TRANSFER = "file-transfer"
    RAW_STREAM = "raw-stream"

    @classmethod
    def parse(cls, value: "str | ConnectionKind") -> "ConnectionKind":
        """Parse a connection kind, accepting protocol-style aliases.

        Args:
            value: Canonical kind or alias (ssh, sftp, telnet, raw)

        Returns:
            Matching ConnectionKind

        Raises:
            UnsupportedConnectionKindError: If the value is not recognized
        """
        if isinstance(value, ConnectionKind):
            return value
        kind = _KIND_ALIASES.get(str(value).strip().lower())
        if kind is None:
            raise UnsupportedConnectionKindError(str(value))
        return kind


_KIND_ALIASES = {
    "shell": ConnectionKind.SHELL,
    "ssh": ConnectionKind.SHELL,
    "file-transfer": ConnectionKind.FILE_TRANSFER,
    "sftp": ConnectionKind.FILE_TRANSFER,
    "raw-stream": ConnectionKind.RAW_STREAM,
    "raw": ConnectionKind.RAW_STREAM,
    "telnet": ConnectionKind.RAW_STREAM,
}


class AuthMethod(str, Enum):
    """How a hop authenticates."""

    AGENT = "agent"
    PASSWORD = "password"
    KEY = "key"  # stored key, written to a temp file per attempt
    IDENTITY_FILE = "identity-file"  # key already on disk


@dataclass(frozen=True)
class RetryPolicy:
    """Automatic reconnect budget for a host."""

    max_attempts: int = 5
    base_delay: float = 5.0
    max_delay: float = 60.0
    auto_reconnect: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")

    def delay_for(self, attempt_count: int) -> float:
        """Exponential backoff delay before the next attempt.

        Args:
            attempt_count: Number of reconnect attempts already made

        Returns:
            Delay in seconds, capped at max_delay
        """
        return min(self.base_delay * (2**attempt_count), self.max_delay)


@dataclass(frozen=True)
class HostConfig:
    """Immutable snapshot of a host from the catalog."""

    id: str
    address: str
    port: int = 22
    username: str = "root"
    connection_kind: ConnectionKind = ConnectionKind.SHELL
    auth_method: AuthMethod = AuthMethod.AGENT
    key_id: str | None = None
    identity_file: str | None = None
    password: str | None = field(default=None, repr=False)
    chain: tuple[str, ...] = ()
    keepalive_interval: float = 30.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    working_directory: str | None = None
    label: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Host id must not be empty")
        if self.id in self.chain:
            raise ConfigurationError(
                f"Host {self.id!r} cannot appear in its own chain", host_id=self.id
            )
        if self.auth_method is AuthMethod.KEY and not self.key_id:
            raise ConfigurationError(
                f"Host {self.id!r} uses key auth without a key_id", host_id=self.id
            )

    @property
    def display_name(self) -> str:
        """Label shown to users, falling back to the host id."""
        return self.label or self.id

    @property
    def endpoint(self) -> str:
        """user@address:port string for logs."""
        return f"{self.username}@{self.address}:{self.port}"
