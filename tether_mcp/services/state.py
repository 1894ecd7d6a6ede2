"""Access to the running server's dependencies.

The server lifespan builds a ``Dependencies`` container and registers it
here; tools and resources look it up per request. Nothing is created
lazily: using a tool outside a running server is an error.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tether_mcp.dependencies import Dependencies

_deps: "Dependencies | None" = None


def get_dependencies() -> "Dependencies":
    """Get the registered dependencies.

    Raises:
        RuntimeError: If the server has not started
    """
    if _deps is None:
        raise RuntimeError("Tether MCP dependencies are not initialized")
    return _deps


def set_dependencies(deps: "Dependencies") -> None:
    """Register the dependencies of the running server (or a test)."""
    global _deps
    _deps = deps


def reset_state() -> None:
    """Forget the registered dependencies."""
    global _deps
    _deps = None
