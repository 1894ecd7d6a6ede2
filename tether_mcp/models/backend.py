"""Backend boundary data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Liveness(str, Enum):
    """Result of a liveness probe."""

    ALIVE = "alive"
    DEAD = "dead"


@dataclass(frozen=True)
class ConnectResult:
    """Outcome of a successful handler connect."""

    handle: Any
    interactive: bool = True


@dataclass(frozen=True)
class BackendEvent:
    """Event emitted by the backend for one session."""

    session_id: str
    type: str  # output | exit | error
    data: bytes | str | None = None
    exit_code: int | None = None
    reason: str | None = None
    handle: Any = None

    @property
    def is_terminal(self) -> bool:
        """True when the event ends the remote session."""
        return self.type in ("exit", "error")
