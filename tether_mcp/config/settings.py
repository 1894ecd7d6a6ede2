"""Application settings from environment variables.

Centralized environment variable parsing and validation.
"""

import logging
import os
from dataclasses import dataclass, field

from tether_mcp.models import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Application settings from environment.

    Handles parsing, validation, and defaults for all env vars.
    """

    # Transport
    transport: str = field(default="http")
    http_host: str = field(default="0.0.0.0")
    http_port: int = field(default=8000)

    # Logging
    log_level: str = field(default="INFO")
    log_payloads: bool = field(default=False)
    slow_threshold_ms: int = field(default=1000)
    include_traceback: bool = field(default=False)

    # Connect attempts
    connect_timeout: float = field(default=30.0)
    connection_log_size: int = field(default=200)
    key_dir: str | None = field(default=None)

    # Heartbeat
    keepalive_interval: float = field(default=30.0)
    probe_timeout: float = field(default=10.0)
    heartbeat_max_failures: int = field(default=1)

    # Auto-reconnect
    auto_reconnect: bool = field(default=True)
    retry_auth_failures: bool = field(default=True)
    max_attempts: int = field(default=5)
    base_delay: float = field(default=5.0)
    max_delay: float = field(default=60.0)
    max_total_time: float = field(default=300.0)
    offline_wait: float = field(default=30.0)

    # Network monitor
    network_probe_targets: list[str] = field(
        default_factory=lambda: ["1.1.1.1:53", "8.8.8.8:53"]
    )
    network_poll_interval: float = field(default=5.0)
    network_probe_timeout: float = field(default=2.0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        Returns:
            Settings instance with values from environment
        """
        return cls(
            transport=cls._get_transport(),
            http_host=os.getenv("TETHER_HTTP_HOST", "0.0.0.0"),
            http_port=cls._get_int("TETHER_HTTP_PORT", 8000),
            log_level=os.getenv("TETHER_LOG_LEVEL", "INFO").upper(),
            log_payloads=cls._get_bool("TETHER_LOG_PAYLOADS", False),
            slow_threshold_ms=cls._get_int("TETHER_SLOW_THRESHOLD_MS", 1000),
            include_traceback=cls._get_bool("TETHER_INCLUDE_TRACEBACK", False),
            connect_timeout=cls._get_float("TETHER_CONNECT_TIMEOUT", 30.0),
            connection_log_size=cls._get_int("TETHER_CONNECTION_LOG_SIZE", 200),
            key_dir=os.getenv("TETHER_KEY_DIR") or None,
            keepalive_interval=cls._get_float("TETHER_KEEPALIVE_INTERVAL", 30.0),
            probe_timeout=cls._get_float("TETHER_PROBE_TIMEOUT", 10.0),
            heartbeat_max_failures=cls._get_int("TETHER_HEARTBEAT_MAX_FAILURES", 1),
            auto_reconnect=cls._get_bool("TETHER_AUTO_RECONNECT", True),
            retry_auth_failures=cls._get_bool("TETHER_RETRY_AUTH_FAILURES", True),
            max_attempts=cls._get_int("TETHER_MAX_ATTEMPTS", 5),
            base_delay=cls._get_float("TETHER_BASE_DELAY", 5.0),
            max_delay=cls._get_float("TETHER_MAX_DELAY", 60.0),
            max_total_time=cls._get_float("TETHER_MAX_TOTAL_TIME", 300.0),
            offline_wait=cls._get_float("TETHER_OFFLINE_WAIT", 30.0),
            network_probe_targets=cls._get_list(
                "TETHER_NETWORK_PROBE_TARGETS", ["1.1.1.1:53", "8.8.8.8:53"]
            ),
            network_poll_interval=cls._get_float("TETHER_NETWORK_POLL_INTERVAL", 5.0),
            network_probe_timeout=cls._get_float("TETHER_NETWORK_PROBE_TIMEOUT", 2.0),
        )

    def default_retry_policy(self) -> RetryPolicy:
        """Retry policy applied to hosts that do not define their own."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            auto_reconnect=self.auto_reconnect,
        )

    def probe_targets(self) -> dict[str, tuple[str, int]]:
        """Parse network probe targets into {name: (host, port)}."""
        targets: dict[str, tuple[str, int]] = {}
        for target in self.network_probe_targets:
            host, sep, port = target.rpartition(":")
            if not sep or not host:
                logger.warning("Ignoring network probe target without port: %s", target)
                continue
            try:
                targets[target] = (host, int(port))
            except ValueError:
                logger.warning("Ignoring network probe target with bad port: %s", target)
        return targets

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer from environment.

        Args:
            key: Environment variable key
            default: Default value if not set

        Returns:
            Integer value from environment or default
        """
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid int for %s: %s, using default %d", key, value, default)
            return default

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        """Get float (seconds) from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            logger.warning("Invalid float for %s: %s, using default %s", key, value, default)
            return default

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        """Get boolean from environment.

        Args:
            key: Environment variable key
            default: Default value if not set

        Returns:
            Boolean value from environment or default
        """
        value = os.getenv(key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _get_list(key: str, default: list[str]) -> list[str]:
        """Get comma-separated list from environment."""
        value = os.getenv(key, "").strip()
        if not value:
            return list(default)
        return [item.strip() for item in value.split(",") if item.strip()]

    @staticmethod
    def _get_transport() -> str:
        """Get transport from environment with validation.

        Returns:
            Transport type ("http" or "stdio")
        """
        transport = os.getenv("TETHER_TRANSPORT", "").lower()
        if transport in ("http", "stdio"):
            return transport
        return "http"
