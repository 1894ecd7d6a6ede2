"""Session tools: the user intents exposed over MCP."""

import logging
from typing import Any

from tether_mcp.services import get_dependencies

logger = logging.getLogger(__name__)


async def connect(host: str) -> dict[str, Any]:
    """Open a session to a configured host.

    The host's ProxyJump chain is resolved and connected hop by hop. If the
    first attempt fails with a retriable error, automatic reconnection
    continues in the background; poll ``sessions`` or read
    ``sessions://{session_id}`` to follow it.

    Args:
        host: Host id from the SSH config (see hosts://list)

    Returns:
        Session snapshot after the first attempt
    """
    snapshot = await get_dependencies().engine.connect(host)
    return snapshot.to_dict()


async def retry(session_id: str) -> dict[str, Any]:
    """Discard pending work for a session and connect again from scratch.

    Resets the reconnect counters, including an exhausted retry budget.
    """
    snapshot = await get_dependencies().engine.retry(session_id)
    return snapshot.to_dict()


async def cancel(session_id: str) -> dict[str, Any]:
    """Stop connecting or reconnecting and disconnect. The session is kept."""
    snapshot = await get_dependencies().engine.cancel(session_id)
    return snapshot.to_dict()


async def close(session_id: str) -> dict[str, Any]:
    """Disconnect and forget a session."""
    await get_dependencies().engine.close(session_id)
    return {"session_id": session_id, "closed": True}


async def sessions() -> list[dict[str, Any]]:
    """List every session with its state, reconnect progress and last error."""
    return [snapshot.to_dict() for snapshot in get_dependencies().engine.list_sessions()]
