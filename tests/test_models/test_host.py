"""Tests for host and session models."""

import pytest

from tether_mcp.errors import (
    ConfigurationError,
    ConnectTimeoutError,
    ErrorKind,
    UnsupportedConnectionKindError,
)
from tether_mcp.models import (
    AuthMethod,
    ConnectionKind,
    ConnectionState,
    HostConfig,
    LastError,
    RetryPolicy,
    Session,
    SessionSnapshot,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("ssh", ConnectionKind.SHELL),
        ("Shell", ConnectionKind.SHELL),
        ("sftp", ConnectionKind.FILE_TRANSFER),
        ("file-transfer", ConnectionKind.FILE_TRANSFER),
        ("telnet", ConnectionKind.RAW_STREAM),
        (" raw ", ConnectionKind.RAW_STREAM),
    ],
)
def test_connection_kind_aliases(value: str, expected: ConnectionKind) -> None:
    """Protocol-style aliases map onto the three kinds."""
    assert ConnectionKind.parse(value) is expected


def test_connection_kind_unknown() -> None:
    """Unknown kinds are configuration errors."""
    with pytest.raises(UnsupportedConnectionKindError) as exc_info:
        ConnectionKind.parse("rdp")

    assert exc_info.value.retriable is False
    assert exc_info.value.kind is ErrorKind.CONFIGURATION


def test_retry_policy_backoff_is_capped() -> None:
    """Delay doubles per attempt up to max_delay."""
    policy = RetryPolicy(base_delay=1.0, max_delay=10.0)

    assert [policy.delay_for(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_retry_policy_rejects_negative_values() -> None:
    """Negative delays or attempts are rejected."""
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=-1)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1.0)


def test_host_rejects_self_in_chain() -> None:
    """A host must not appear in its own chain."""
    with pytest.raises(ConfigurationError):
        HostConfig(id="web", address="10.0.0.1", chain=("bastion", "web"))


def test_host_key_auth_requires_key_id() -> None:
    """Key auth without a key id is a configuration error."""
    with pytest.raises(ConfigurationError):
        HostConfig(id="web", address="10.0.0.1", auth_method=AuthMethod.KEY)


def test_host_display_name_falls_back_to_id() -> None:
    """Hosts without a label display their id."""
    assert HostConfig(id="web", address="10.0.0.1").display_name == "web"
    assert HostConfig(id="web", address="10.0.0.1", label="Web 1").display_name == "Web 1"


def test_host_password_not_in_repr() -> None:
    """Passwords never show up in repr."""
    host = HostConfig(id="web", address="10.0.0.1", password="hunter2")

    assert "hunter2" not in repr(host)


def test_connection_state_groups() -> None:
    """States report live and failed groups correctly."""
    assert ConnectionState.READY.is_live
    assert ConnectionState.CONNECTED.is_live
    assert ConnectionState.AUTHENTICATING.is_pending
    assert ConnectionState.TIMEOUT.is_failed
    assert not ConnectionState.DISCONNECTED.is_failed


def test_session_log_is_bounded() -> None:
    """Connection log keeps only the newest lines."""
    session = Session(id="s1", host=HostConfig(id="web", address="10.0.0.1"), log_size=3)
    for i in range(5):
        session.log(f"line {i}")

    assert list(session.connection_log) == ["line 2", "line 3", "line 4"]


def test_snapshot_to_dict() -> None:
    """Snapshots serialize enums and errors to plain values."""
    error = LastError.from_error(ConnectTimeoutError("Timed out", host_id="web"))
    snapshot = SessionSnapshot(
        session_id="s1",
        host_id="web",
        label="web",
        connection_state=ConnectionState.TIMEOUT,
        is_reconnecting=True,
        reconnect_attempt_count=2,
        reconnect_exhausted=False,
        last_error=error,
        generation=4,
        connection_log=("a", "b"),
    )

    data = snapshot.to_dict()

    assert data["connection_state"] == "TIMEOUT"
    assert data["last_error"] == {
        "kind": "timeout",
        "message": "Timed out",
        "retriable": True,
        "host_id": "web",
    }
    assert data["connection_log"] == ["a", "b"]
