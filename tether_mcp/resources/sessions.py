"""Session resources: read-only views of session snapshots."""

from tether_mcp.models import SessionSnapshot
from tether_mcp.services import get_dependencies


def _status_line(snapshot: SessionSnapshot) -> str:
    status = snapshot.connection_state.value
    if snapshot.is_reconnecting:
        status += f", reconnecting (attempt {snapshot.reconnect_attempt_count + 1})"
    elif snapshot.reconnect_exhausted:
        status += ", retries exhausted"
    return f"{snapshot.session_id} [{snapshot.label}] {status}"


async def list_sessions_resource() -> str:
    """One line per session with state and reconnect progress."""
    snapshots = get_dependencies().engine.list_sessions()
    if not snapshots:
        return "No sessions."
    return "\n".join(_status_line(snapshot) for snapshot in snapshots)


async def session_resource(session_id: str) -> str:
    """Session detail including last error and the connection log.

    Raises:
        SessionNotFoundError: If no session has this id
    """
    snapshot = get_dependencies().engine.snapshot(session_id)
    lines = [_status_line(snapshot), ""]
    lines.append(f"Host:       {snapshot.host_id}")
    lines.append(f"Generation: {snapshot.generation}")
    if snapshot.last_error:
        error = snapshot.last_error
        retry = "retriable" if error.retriable else "not retriable"
        lines.append(f"Last error: [{error.kind.value}, {retry}] {error.message}")

    lines.append("")
    lines.append("Connection log:")
    lines.extend(f"  {line}" for line in snapshot.connection_log)
    return "\n".join(lines)
