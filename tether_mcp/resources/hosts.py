"""Hosts resource for listing configured hosts and their chains."""

from tether_mcp.services import get_dependencies
from tether_mcp.utils.ping import check_hosts_online


async def list_hosts_resource() -> str:
    """List configured hosts with reachability, chains and retry policy.

    Returns:
        Formatted host list
    """
    deps = get_dependencies()
    hosts = deps.catalog.list()

    if not hosts:
        return "No hosts configured."

    # Jumped hosts are usually unreachable directly; only probe first hops
    endpoints = {
        host.id: (host.address, host.port)
        for host in hosts
        if not host.chain
    }
    online_status = await check_hosts_online(endpoints, timeout=2.0)

    network = "online" if deps.network.is_online() else "offline"
    lines = [f"Configured Hosts (network {network})", "=" * 40, ""]

    for host in hosts:
        if host.chain:
            status = "via jump"
        elif online_status.get(host.id):
            status = "online"
        else:
            status = "offline"
        policy = host.retry_policy

        lines.append(f"{host.display_name} ({status})")
        lines.append(f"    Endpoint:  {host.endpoint}")
        lines.append(f"    Kind:      {host.connection_kind.value}, auth {host.auth_method.value}")
        if host.chain:
            lines.append(f"    Chain:     {' -> '.join([*host.chain, host.id])}")
        keepalive = f"{host.keepalive_interval:g}s" if host.keepalive_interval > 0 else "off"
        lines.append(f"    Keepalive: {keepalive}")
        if policy.auto_reconnect and policy.max_attempts > 0:
            lines.append(
                f"    Reconnect: {policy.max_attempts} attempt(s), "
                f"backoff {policy.base_delay:g}s..{policy.max_delay:g}s"
            )
        else:
            lines.append("    Reconnect: off")
        lines.append("")

    return "\n".join(lines)
