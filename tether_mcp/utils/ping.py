"""TCP reachability probes."""

import asyncio
import logging

logger = logging.getLogger(__name__)


async def check_host_online(hostname: str, port: int, timeout: float = 2.0) -> bool:
    """Check if an endpoint accepts TCP connections.

    Args:
        hostname: Host to check.
        port: Port to connect to.
        timeout: Connection timeout in seconds.

    Returns:
        True if the endpoint is reachable, False otherwise.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(hostname, port),
            timeout=timeout,
        )
        writer.close()
        await writer.wait_closed()
        return True
    except (TimeoutError, OSError) as e:
        logger.debug("Probe of %s:%d failed: %s", hostname, port, str(e) or type(e).__name__)
        return False


async def check_hosts_online(
    hosts: dict[str, tuple[str, int]],
    timeout: float = 2.0,
) -> dict[str, bool]:
    """Check multiple endpoints concurrently.

    Args:
        hosts: Dict of {name: (hostname, port)}.
        timeout: Connection timeout per endpoint.

    Returns:
        Dict of {name: is_online}.
    """
    if not hosts:
        return {}

    results = await asyncio.gather(
        *(check_host_online(hostname, port, timeout) for hostname, port in hosts.values())
    )
    return dict(zip(hosts, results))


async def any_host_online(
    hosts: dict[str, tuple[str, int]],
    timeout: float = 2.0,
) -> bool:
    """True as soon as any endpoint answers.

    Remaining probes are cancelled once one succeeds.
    """
    if not hosts:
        return False

    probes = [
        asyncio.ensure_future(check_host_online(hostname, port, timeout))
        for hostname, port in hosts.values()
    ]
    try:
        for probe in asyncio.as_completed(probes):
            if await probe:
                return True
        return False
    finally:
        for probe in probes:
            probe.cancel()
