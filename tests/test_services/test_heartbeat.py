"""Tests for the heartbeat monitor."""

import asyncio

import pytest
from conftest import FakeBackend, make_host, wait_until

from tether_mcp.models import Session
from tether_mcp.services.handlers import ShellHandler
from tether_mcp.services.heartbeat import HeartbeatMonitor


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, str]] = []

    def __call__(self, session: Session, generation: int, reason: str) -> None:
        self.calls.append((session.id, generation, reason))


@pytest.fixture
def live_session() -> tuple[Session, FakeBackend]:
    backend = FakeBackend()
    session = Session(id="s1", host=make_host("web", keepalive_interval=0.02))
    session.handle = "handle-1"
    backend.alive["handle-1"] = True
    return session, backend


def test_rejects_zero_failure_budget() -> None:
    """max_failures must be positive."""
    with pytest.raises(ValueError, match="max_failures"):
        HeartbeatMonitor(Recorder(), max_failures=0)


@pytest.mark.asyncio
async def test_keepalive_disabled_does_not_start() -> None:
    """No monitor when keepalive is off."""
    monitor = HeartbeatMonitor(Recorder())
    session = Session(id="s1", host=make_host("web"))

    assert monitor.start(session, ShellHandler(FakeBackend()), 1) is False
    assert not monitor.is_running("s1")


@pytest.mark.asyncio
async def test_second_start_is_ignored(live_session) -> None:
    """One monitor per session."""
    session, backend = live_session
    monitor = HeartbeatMonitor(Recorder())
    handler = ShellHandler(backend)

    assert monitor.start(session, handler, 1) is True
    assert monitor.start(session, handler, 1) is False
    monitor.stop_all()


@pytest.mark.asyncio
async def test_healthy_session_keeps_probing(live_session) -> None:
    """Healthy sessions are probed repeatedly."""
    session, backend = live_session
    recorder = Recorder()
    monitor = HeartbeatMonitor(recorder, probe_timeout=0.5)
    monitor.start(session, ShellHandler(backend), 1)

    await wait_until(lambda: monitor.get_state("s1").last_probe_at is not None)
    await asyncio.sleep(0.05)

    assert recorder.calls == []
    assert monitor.is_running("s1")
    assert monitor.get_state("s1").consecutive_failures == 0
    monitor.stop("s1")


@pytest.mark.asyncio
async def test_dead_probe_reports_loss_once(live_session) -> None:
    """Loss is reported once per episode."""
    session, backend = live_session
    recorder = Recorder()
    monitor = HeartbeatMonitor(recorder, probe_timeout=0.5)
    monitor.start(session, ShellHandler(backend), 7)

    backend.alive["handle-1"] = False
    await wait_until(lambda: recorder.calls)
    await asyncio.sleep(0.06)

    assert len(recorder.calls) == 1
    session_id, generation, reason = recorder.calls[0]
    assert (session_id, generation) == ("s1", 7)
    assert "probe reported dead" in reason
    assert not monitor.is_running("s1")


@pytest.mark.asyncio
async def test_probe_timeout_counts_as_failure(live_session) -> None:
    """Slow probes count as failures."""
    session, backend = live_session
    backend.probe_delay = 0.5
    recorder = Recorder()
    monitor = HeartbeatMonitor(recorder, probe_timeout=0.02)
    monitor.start(session, ShellHandler(backend), 1)

    await wait_until(lambda: recorder.calls)

    assert "heartbeat timeout" in recorder.calls[0][2]


@pytest.mark.asyncio
async def test_failure_budget_is_consecutive(live_session) -> None:
    """A success resets the failure count."""
    session, backend = live_session
    recorder = Recorder()
    monitor = HeartbeatMonitor(recorder, probe_timeout=0.5, max_failures=3)
    monitor.start(session, ShellHandler(backend), 1)
    backend.alive["handle-1"] = False

    await wait_until(lambda: monitor.get_state("s1").consecutive_failures >= 1)
    backend.alive["handle-1"] = True
    await wait_until(lambda: monitor.get_state("s1").consecutive_failures == 0)

    assert recorder.calls == []
    monitor.stop("s1")


@pytest.mark.asyncio
async def test_stop_cancels_probing(live_session) -> None:
    """Stop ends the probe task."""
    session, backend = live_session
    recorder = Recorder()
    monitor = HeartbeatMonitor(recorder)
    monitor.start(session, ShellHandler(backend), 1)
    task = monitor.get_state("s1").task

    monitor.stop("s1")
    backend.alive["handle-1"] = False
    await asyncio.sleep(0.05)

    assert task.cancelled()
    assert recorder.calls == []
    monitor.stop("unknown")
