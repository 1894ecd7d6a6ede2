"""Tests for console log formatting."""

import logging
import sys

import pytest

from tether_mcp.utils.console import (
    COLORS,
    COMPONENT_COLORS,
    STATE_COLORS,
    ColorfulFormatter,
    MCPRequestFormatter,
)


def make_record(
    message: str, name: str = "tether_mcp.services.engine", **kwargs
) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=kwargs.pop("level", logging.INFO),
        pathname=__file__,
        lineno=1,
        msg=message,
        args=kwargs.pop("args", ()),
        exc_info=kwargs.pop("exc_info", None),
    )


def test_plain_output_has_no_escape_codes() -> None:
    """No ANSI codes when colors are off."""
    formatter = ColorfulFormatter(use_colors=False)

    record = make_record("Session %s: %s -> %s", args=("db-1", "CONNECTING", "READY"))

    line = formatter.format(record)

    assert "\033[" not in line
    assert "| INFO     |" in line
    assert "services.engine" in line
    assert line.endswith("Session db-1: CONNECTING -> READY")


def test_states_are_highlighted() -> None:
    """Session states are colored."""
    line = ColorfulFormatter().format(make_record("web-1: FAILED -> CONNECTING"))

    assert f"{STATE_COLORS['FAILED']}FAILED{COLORS['reset']}" in line
    assert f"{STATE_COLORS['CONNECTING']}CONNECTING{COLORS['reset']}" in line


def test_endpoints_and_attempts_are_highlighted() -> None:
    """Endpoints and attempt counters are colored."""
    line = ColorfulFormatter().format(
        make_record("Reconnect attempt 2/5 to root@db.example.com:22")
    )

    assert f"{COLORS['bright_cyan']}attempt 2/5" in line
    assert f"{COLORS['bright_magenta']}root@db.example.com:22" in line


@pytest.mark.parametrize(
    ("logger_name", "expected"),
    [
        ("tether_mcp.services.reconnect", "tether_mcp.services.reconnect"),
        ("tether_mcp.services.chain", "tether_mcp.services"),
        ("tether_mcp.config.parser", "tether_mcp.config"),
    ],
)
def test_component_color_uses_longest_prefix(logger_name: str, expected: str) -> None:
    """The most specific logger prefix wins."""
    formatter = ColorfulFormatter()

    assert formatter._get_component_color(logger_name) == COMPONENT_COLORS[expected]


def test_exception_is_appended() -> None:
    """Tracebacks follow the message."""
    try:
        raise ValueError("boom")
    except ValueError:
        record = make_record("Listener failed", level=logging.ERROR, exc_info=sys.exc_info())

    line = ColorfulFormatter(use_colors=False).format(record)

    assert "Traceback" in line
    assert "ValueError: boom" in line


@pytest.mark.parametrize(
    ("message", "marker"),
    [
        ("Tether MCP server starting up", ">>>"),
        ("Heartbeat failed for session web-1", "!!"),
        ("Network offline, session web-1 waiting", "!"),
        ("Opened session web-1 for web", "+"),
    ],
)
def test_request_formatter_markers(message: str, marker: str) -> None:
    """Request lines get direction markers."""
    line = MCPRequestFormatter().format(make_record(message))

    assert line.split(COLORS["reset"])[0].rstrip().endswith(marker)


def test_request_formatter_without_colors_is_plain() -> None:
    """Request lines stay plain without colors."""
    record = make_record("Tether MCP server starting up")

    line = MCPRequestFormatter(use_colors=False).format(record)

    assert not line.startswith(">>>")
    assert "\033[" not in line
