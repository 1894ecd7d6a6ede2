"""SSH host key verification.

Decides which known_hosts file every hop of a chain is verified against.
"""

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = Path.home() / ".ssh" / "known_hosts"


class HostKeyVerifier:
    """SSH host key verification policy.

    Strict mode fails closed when the known_hosts file is missing; the
    special value ``none`` disables verification entirely.
    """

    def __init__(
        self,
        known_hosts_path: str | None = None,
        strict_checking: bool = True,
    ):
        """Initialize host key verifier.

        Args:
            known_hosts_path: Path to known_hosts file or 'none' to disable
            strict_checking: Reject unknown host keys

        Raises:
            FileNotFoundError: If strict mode and file missing
        """
        self.strict_checking = strict_checking
        self._known_hosts = self._resolve(known_hosts_path)

    @classmethod
    def from_env(cls) -> "HostKeyVerifier":
        """Build from TETHER_KNOWN_HOSTS / TETHER_STRICT_HOST_KEY_CHECKING."""
        strict = os.getenv("TETHER_STRICT_HOST_KEY_CHECKING", "true").lower() != "false"
        return cls(
            known_hosts_path=os.getenv("TETHER_KNOWN_HOSTS"),
            strict_checking=strict,
        )

    def _resolve(self, value: str | None) -> str | None:
        """Resolve known_hosts path with security defaults."""
        if value and value.strip().lower() == "none":
            logger.critical(
                "SSH host key verification DISABLED (TETHER_KNOWN_HOSTS=none). "
                "Every hop of every chain is open to man-in-the-middle attacks."
            )
            return None

        path = Path(os.path.expanduser(value)) if value else DEFAULT_KNOWN_HOSTS
        if path.exists():
            return str(path)

        if self.strict_checking:
            raise FileNotFoundError(
                f"SSH host key verification required but known_hosts not found: "
                f"{path}\n\n"
                f"To fix this:\n"
                f"1. Add host keys: ssh-keyscan <hostname> >> {path}\n"
                f"2. Or point TETHER_KNOWN_HOSTS at an existing file\n"
                f"3. Or disable verification (NOT RECOMMENDED): "
                f"export TETHER_KNOWN_HOSTS=none"
            )

        logger.warning(
            "known_hosts not found at %s, verification disabled. This is insecure!",
            path,
        )
        return None

    def get_known_hosts_path(self) -> str | None:
        """Path to known_hosts, or None if verification is disabled."""
        return self._known_hosts

    def is_enabled(self) -> bool:
        """Check if host key verification is enabled."""
        return self._known_hosts is not None

    def connect_options(self) -> dict[str, Any]:
        """Keyword arguments for asyncssh.connect()."""
        return {"known_hosts": self._known_hosts}
