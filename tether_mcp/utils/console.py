"""Colorful console logging with session state highlighting."""

import logging
import re
from datetime import datetime

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    "bright_black": "\033[90m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
    "bright_yellow": "\033[93m",
    "bright_blue": "\033[94m",
    "bright_magenta": "\033[95m",
    "bright_cyan": "\033[96m",
    "bg_red": "\033[41m",
}

LEVEL_COLORS = {
    "DEBUG": COLORS["bright_black"],
    "INFO": COLORS["bright_green"],
    "WARNING": COLORS["bright_yellow"],
    "ERROR": COLORS["bright_red"],
    "CRITICAL": COLORS["bg_red"] + COLORS["white"] + COLORS["bold"],
}

# Longest prefix wins
COMPONENT_COLORS = {
    "tether_mcp.server": COLORS["bright_cyan"],
    "tether_mcp.services.engine": COLORS["bright_magenta"],
    "tether_mcp.services.state_machine": COLORS["magenta"],
    "tether_mcp.services.reconnect": COLORS["bright_yellow"],
    "tether_mcp.services.heartbeat": COLORS["bright_black"],
    "tether_mcp.services.network": COLORS["bright_blue"],
    "tether_mcp.services.backend": COLORS["blue"],
    "tether_mcp.services": COLORS["cyan"],
    "tether_mcp.middleware": COLORS["yellow"],
    "tether_mcp.config": COLORS["green"],
}
DEFAULT_COMPONENT_COLOR = COLORS["white"]

STATE_COLORS = {
    "DISCONNECTED": COLORS["bright_black"],
    "CONNECTING": COLORS["cyan"],
    "AUTHENTICATING": COLORS["blue"],
    "CONNECTED": COLORS["green"],
    "READY": COLORS["bright_green"],
    "FAILED": COLORS["bright_red"],
    "TIMEOUT": COLORS["yellow"],
}

_STATE_PATTERN = re.compile(r"\b(" + "|".join(STATE_COLORS) + r")\b")
_URI_PATTERN = re.compile(r"(\w+://[^\s]+)")
_DURATION_PATTERN = re.compile(r"(\d+\.?\d*m?s)\b")
_ENDPOINT_PATTERN = re.compile(r"(\w[\w.\-]*@[\w.\-]+:\d+)")
_ATTEMPT_PATTERN = re.compile(r"(attempt \d+/\d+)")


class ColorfulFormatter(logging.Formatter):
    """Single-line formatter: time | level | component | message."""

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def _colorize(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{COLORS['reset']}"

    def _get_component_color(self, name: str) -> str:
        matches = [prefix for prefix in COMPONENT_COLORS if name.startswith(prefix)]
        if not matches:
            return DEFAULT_COMPONENT_COLOR
        return COMPONENT_COLORS[max(matches, key=len)]

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created).astimezone()
        return f"{dt:%H:%M:%S}.{int(record.msecs):03d} {dt:%m/%d}"

    def _format_level(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname, COLORS["white"])
        return self._colorize(f"{record.levelname:<8}", color)

    def _format_component(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix("tether_mcp.")
        return self._colorize(f"{name:<24}", self._get_component_color(record.name))

    def format(self, record: logging.LogRecord) -> str:
        """Format the record, appending the traceback if there is one."""
        sep = self._colorize("|", COLORS["dim"])
        line = " ".join(
            [
                self._colorize(self._format_timestamp(record), COLORS["dim"]),
                sep,
                self._format_level(record),
                sep,
                self._format_component(record),
                sep,
                self._highlight_message(record.getMessage()),
            ]
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _highlight_message(self, message: str) -> str:
        """Color session states, URIs, durations, endpoints and attempt counters."""
        if not self.use_colors:
            return message

        reset = COLORS["reset"]
        message = _STATE_PATTERN.sub(
            lambda m: f"{STATE_COLORS[m.group(1)]}{m.group(1)}{reset}", message
        )
        if "://" in message:
            message = _URI_PATTERN.sub(f"{COLORS['bright_blue']}\\1{reset}", message)
        message = _DURATION_PATTERN.sub(f"{COLORS['bright_yellow']}\\1{reset}", message)
        if "@" in message:
            message = _ENDPOINT_PATTERN.sub(f"{COLORS['bright_magenta']}\\1{reset}", message)
        message = _ATTEMPT_PATTERN.sub(f"{COLORS['bright_cyan']}\\1{reset}", message)
        return message


class MCPRequestFormatter(ColorfulFormatter):
    """Adds a leading marker for lifecycle events."""

    MARKERS = (
        (("starting", "ready", "reconnected"), "bright_green", ">>>"),
        (("shutting down", "shutdown", "closed session"), "bright_red", "<<<"),
        (("error", "failed", "dead", "lost"), "bright_red", "!!"),
        (("warning", "slow", "offline", "waiting"), "bright_yellow", "!"),
        (("restored", "completed"), "bright_green", "OK"),
        (("opened session", "connecting", "reconnecting"), "bright_cyan", "+"),
        (("cancel", "closing", "stopping"), "bright_yellow", "-"),
    )

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_colors:
            return base

        message = record.getMessage().lower()
        for words, color, marker in self.MARKERS:
            if any(word in message for word in words):
                return f"{COLORS[color]}{marker:<3}{COLORS['reset']} {base}"
        return f"    {base}"
