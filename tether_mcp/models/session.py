"""Session data models."""

import asyncio
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from tether_mcp.errors import EngineError, ErrorKind
from tether_mcp.models.host import HostConfig

if TYPE_CHECKING:
    from tether_mcp.services.handlers import ConnectionHandler


class ConnectionState(str, Enum):
    """Lifecycle state of a session."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    CONNECTED = "CONNECTED"
    READY = "READY"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"

    @property
    def is_live(self) -> bool:
        """True while a backend handle is held."""
        return self in (ConnectionState.CONNECTED, ConnectionState.READY)

    @property
    def is_pending(self) -> bool:
        """True while a connect attempt is running."""
        return self in (ConnectionState.CONNECTING, ConnectionState.AUTHENTICATING)

    @property
    def is_failed(self) -> bool:
        """True for the terminal-until-retried states."""
        return self in (ConnectionState.FAILED, ConnectionState.TIMEOUT)


@dataclass(frozen=True)
class LastError:
    """Structured error shown to the UI layer."""

    kind: ErrorKind
    message: str
    retriable: bool
    host_id: str | None = None

    @classmethod
    def from_error(cls, error: EngineError) -> "LastError":
        """Build from a normalized engine error."""
        return cls(
            kind=error.kind,
            message=error.message,
            retriable=error.retriable,
            host_id=error.host_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for MCP responses."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retriable": self.retriable,
            "host_id": self.host_id,
        }


@dataclass
class ReconnectState:
    """Progress of an automatic reconnect loop for one session."""

    session_id: str
    is_reconnecting: bool = True
    attempt_count: int = 0
    next_delay: float = 0.0
    cancelled: bool = False
    started_at: float = 0.0


@dataclass
class Session:
    """A connection tab owned by the engine."""

    id: str
    host: HostConfig
    state: ConnectionState = ConnectionState.DISCONNECTED
    generation: int = 0
    handle: Any = None
    handler: "ConnectionHandler | None" = None
    last_error: LastError | None = None
    reconnect_attempt_count: int = 0
    reconnect_exhausted: bool = False
    log_size: int = 200
    connection_log: deque[str] = field(init=False)
    created_at: datetime = field(default_factory=datetime.now)
    connected_at: datetime | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self.connection_log = deque(maxlen=self.log_size)

    def log(self, line: str) -> None:
        """Append a line to the connection log."""
        self.connection_log.append(line)

    @property
    def label(self) -> str:
        """Display label of the owning host."""
        return self.host.display_name


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session's observable fields."""

    session_id: str
    host_id: str
    label: str
    connection_state: ConnectionState
    is_reconnecting: bool
    reconnect_attempt_count: int
    reconnect_exhausted: bool
    last_error: LastError | None
    generation: int
    connection_log: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize for MCP responses."""
        data = asdict(self)
        data["connection_state"] = self.connection_state.value
        data["last_error"] = self.last_error.to_dict() if self.last_error else None
        data["connection_log"] = list(self.connection_log)
        return data
