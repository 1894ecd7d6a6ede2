"""Tests for connection handlers and the handler factory."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import asyncssh
import pytest
from conftest import FakeBackend, make_host

from tether_mcp.errors import (
    AuthenticationError,
    BackendError,
    ConfigurationError,
    ConnectTimeoutError,
    InvariantViolation,
    NetworkError,
    UnsupportedConnectionKindError,
)
from tether_mcp.models import AuthMethod, ConnectionKind, Hop, Liveness, Session
from tether_mcp.services.chain import ResolvedChain
from tether_mcp.services.handlers import (
    FileTransferHandler,
    HandlerFactory,
    RawStreamHandler,
    ShellHandler,
)


def make_chain(*host_ids: str) -> ResolvedChain:
    return ResolvedChain(
        [Hop(h, f"{h}.example.com", 22, "root", AuthMethod.AGENT) for h in host_ids]
    )


@pytest.fixture
def session() -> Session:
    return Session(id="s1", host=make_host("web"))


@pytest.mark.parametrize(
    ("kind", "handler_cls"),
    [
        ("ssh", ShellHandler),
        (ConnectionKind.SHELL, ShellHandler),
        ("sftp", FileTransferHandler),
        ("telnet", RawStreamHandler),
    ],
)
def test_factory_selects_variant(kind: str, handler_cls: type) -> None:
    """Each kind maps to its handler class."""
    backend = FakeBackend()

    handler = HandlerFactory(backend).create(kind)

    assert type(handler) is handler_cls
    assert handler.backend is backend


def test_factory_returns_new_instance_per_call() -> None:
    """Handlers are never shared."""
    factory = HandlerFactory(FakeBackend())

    assert factory.create("ssh") is not factory.create("ssh")


def test_factory_rejects_unknown_kind() -> None:
    """Unknown kinds are a configuration error."""
    with pytest.raises(UnsupportedConnectionKindError):
        HandlerFactory(FakeBackend()).create("vnc")


@pytest.mark.asyncio
async def test_connect_returns_handle(session: Session) -> None:
    """Connect wraps the backend handle."""
    backend = FakeBackend()
    handler = ShellHandler(backend)

    result = await handler.connect(session, make_chain("bastion", "web"))

    assert result.handle == "handle-1"
    assert result.interactive is True
    assert backend.connect_calls[0]["kind"] is ConnectionKind.SHELL
    assert backend.connect_calls[0]["host_ids"] == ["bastion", "web"]


@pytest.mark.asyncio
async def test_connect_without_handle_is_invariant_violation(session: Session) -> None:
    """Success without a handle is an invariant violation."""
    backend = MagicMock()
    backend.connect = AsyncMock(return_value=None)

    with pytest.raises(InvariantViolation):
        await ShellHandler(backend).connect(session, make_chain("web"))


@pytest.mark.asyncio
async def test_connect_translates_errors(session: Session) -> None:
    """Backend errors come back normalized."""
    backend = FakeBackend()
    backend.script = [asyncssh.PermissionDenied("bad key")]

    with pytest.raises(AuthenticationError) as exc_info:
        await ShellHandler(backend).connect(session, make_chain("web"))

    assert exc_info.value.host_id == "web"
    assert isinstance(exc_info.value.__cause__, asyncssh.PermissionDenied)


@pytest.mark.asyncio
async def test_connect_propagates_cancellation(session: Session) -> None:
    """Cancellation is not translated."""
    backend = FakeBackend()
    backend.gate = asyncio.Event()
    task = asyncio.create_task(ShellHandler(backend).connect(session, make_chain("web")))
    await asyncio.sleep(0.01)

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert backend.connect_calls[0]["cancelled"] is True


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (asyncssh.PermissionDenied("denied"), AuthenticationError),
        (TimeoutError(), ConnectTimeoutError),
        (asyncssh.ConnectionLost("reset"), NetworkError),
        (ConnectionResetError("reset"), NetworkError),
        (OSError("unreachable"), NetworkError),
        (RuntimeError("boom"), BackendError),
        (ConfigurationError("bad"), ConfigurationError),
    ],
)
def test_translate_error(error: Exception, expected: type) -> None:
    """Raw errors map to their kinds."""
    translated = ShellHandler(FakeBackend()).translate_error(error, host_id="web")

    assert isinstance(translated, expected)


def test_timeout_message_without_detail() -> None:
    """Bare timeouts get a readable message."""
    translated = ShellHandler(FakeBackend()).translate_error(TimeoutError())

    assert translated.message == "Timed out: no response"


def test_file_transfer_maps_sftp_errors() -> None:
    """SFTP errors map to protocol errors."""
    error = asyncssh.SFTPNoSuchFile("no such directory")

    translated = FileTransferHandler(FakeBackend()).translate_error(error, "web")

    assert isinstance(translated, BackendError)
    assert "no such directory" in translated.message


def test_raw_stream_maps_refused() -> None:
    """Refused streams are network errors."""
    translated = RawStreamHandler(FakeBackend()).translate_error(ConnectionRefusedError(), "web")

    assert isinstance(translated, NetworkError)
    assert "refused" in translated.message


@pytest.mark.asyncio
async def test_disconnect_without_handle_is_noop(session: Session) -> None:
    """Disconnect without a handle does nothing."""
    backend = FakeBackend()

    await ShellHandler(backend).disconnect(session)

    assert backend.disconnected == []


@pytest.mark.asyncio
async def test_disconnect_failure_is_logged(session: Session) -> None:
    """Disconnect errors are logged, not raised."""
    backend = MagicMock()
    backend.disconnect = AsyncMock(side_effect=OSError("gone"))
    session.handle = "h"

    await ShellHandler(backend).disconnect(session)

    backend.disconnect.assert_awaited_once_with("h")


@pytest.mark.asyncio
async def test_probe_failure_counts_as_dead(session: Session) -> None:
    """A raising probe means dead."""
    backend = MagicMock()
    backend.probe = AsyncMock(side_effect=asyncssh.ConnectionLost("lost"))
    session.handle = "h"

    assert await ShellHandler(backend).probe(session) is Liveness.DEAD


@pytest.mark.asyncio
async def test_probe_without_handle_is_dead(session: Session) -> None:
    """No handle means dead."""
    assert await ShellHandler(FakeBackend()).probe(session) is Liveness.DEAD
