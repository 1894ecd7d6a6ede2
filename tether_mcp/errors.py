"""Shared error taxonomy for the connection engine.

Every component-level failure is normalized into an ``EngineError``
subclass before it reaches the session state machine. Each error carries
an ``ErrorKind`` and a default ``retriable`` flag; the reconnect engine
may still override retriability by policy (authentication rejections).

Cancellation is deliberately not part of this taxonomy: it travels as
``asyncio.CancelledError`` and is never recorded as a session error.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of an engine error."""

    CONFIGURATION = "configuration"
    CREDENTIAL = "credential"
    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    BACKEND = "backend"
    EXHAUSTED = "exhausted"


class EngineError(Exception):
    """Base class for normalized engine errors."""

    kind: ErrorKind = ErrorKind.BACKEND
    retriable: bool = True

    def __init__(self, message: str, host_id: str | None = None) -> None:
        self.message = message
        self.host_id = host_id
        super().__init__(message)


class ConfigurationError(EngineError):
    """Invalid host or chain configuration. Never retried."""

    kind = ErrorKind.CONFIGURATION
    retriable = False


class UnsupportedConnectionKindError(ConfigurationError):
    """No handler exists for the requested connection kind."""

    def __init__(self, connection_kind: str, host_id: str | None = None) -> None:
        self.connection_kind = connection_kind
        super().__init__(
            f"Unsupported connection kind: {connection_kind!r}", host_id=host_id
        )


class ChainError(ConfigurationError):
    """Base class for chain resolution failures."""


class UnknownHostError(ChainError):
    """A chain member is not present in the host catalog."""

    def __init__(self, host_id: str) -> None:
        super().__init__(f"Jump host not found: {host_id}", host_id=host_id)


class CycleDetectedError(ChainError):
    """A host appears more than once in a chain (leaf included)."""

    def __init__(self, host_id: str, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(
            f"Host {host_id!r} appears more than once in chain "
            f"{' -> '.join(chain)}",
            host_id=host_id,
        )


class CredentialMaterializationError(ChainError):
    """Key material for a hop could not be written.

    Fatal for the current attempt only: a fresh reconnect cycle
    re-materializes everything from scratch.
    """

    kind = ErrorKind.CREDENTIAL
    retriable = True

    def __init__(self, hop: str, cause: BaseException | str) -> None:
        self.hop = hop
        self.cause = cause
        super().__init__(
            f"Cannot prepare credentials for {hop}: {cause}", host_id=hop
        )


class NetworkError(EngineError):
    """Transport level failure (refused, reset, unreachable, lost)."""

    kind = ErrorKind.NETWORK


class ConnectTimeoutError(EngineError):
    """The backend did not answer within the connect or probe timeout."""

    kind = ErrorKind.TIMEOUT


class AuthenticationError(EngineError):
    """The remote side rejected our credentials."""

    kind = ErrorKind.AUTHENTICATION


class BackendError(EngineError):
    """Any other failure reported by the backend."""

    kind = ErrorKind.BACKEND


class ReconnectExhaustedError(EngineError):
    """The reconnect budget ran out; terminal until the user retries."""

    kind = ErrorKind.EXHAUSTED
    retriable = False

    def __init__(
        self,
        attempts: int,
        last_error: EngineError | None = None,
        host_id: str | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error.message}" if last_error else ""
        super().__init__(
            f"Connection failed after {attempts} attempt(s){detail}",
            host_id=host_id,
        )


class SessionNotFoundError(KeyError):
    """No session is registered under the given id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(session_id)

    def __str__(self) -> str:
        return f"Unknown session: {self.session_id}"


class InvariantViolation(RuntimeError):
    """Programmer error inside the engine. Not recoverable."""


__all__ = [
    "AuthenticationError",
    "BackendError",
    "ChainError",
    "ConfigurationError",
    "ConnectTimeoutError",
    "CredentialMaterializationError",
    "CycleDetectedError",
    "EngineError",
    "ErrorKind",
    "InvariantViolation",
    "NetworkError",
    "ReconnectExhaustedError",
    "SessionNotFoundError",
    "UnknownHostError",
    "UnsupportedConnectionKindError",
]
