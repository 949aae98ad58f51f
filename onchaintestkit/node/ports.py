"""
Port allocation for parallel test workers

Ports are checked by actually binding a listener, never by consulting a
registry: workers run in separate OS processes and share nothing but the host
network namespace.
"""

import logging
import random
import socket
from typing import Optional, Tuple

from ..constants import DEFAULT_HOST, DEFAULT_PORT_RANGE, MAX_PORT_PROBES
from ..exceptions import PortAllocationError

LOG = logging.getLogger(__name__)


def is_port_available(port: int, host: str = DEFAULT_HOST) -> bool:
    """
    Check if a TCP port can be bound right now

    Binds and listens on the port, then releases it immediately.

    Args:
        port: Port to probe
        host: Interface to bind (loopback by default)

    Returns:
        True if bind and listen succeeded, False if the port is taken
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            s.listen(1)
        except OSError:
            return False
    return True


def allocate_port(
    requested_port: Optional[int] = None,
    port_range: Tuple[int, int] = DEFAULT_PORT_RANGE,
    max_attempts: int = MAX_PORT_PROBES,
    host: str = DEFAULT_HOST,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Find a free port, preferring the requested one

    Args:
        requested_port: Port to try first
        port_range: Inclusive (min, max) range for random candidates
        max_attempts: Number of random candidates to probe
        host: Interface to probe on
        rng: Random source (defaults to the module-level generator)

    Returns:
        A port that was bindable at the time of the probe

    Raises:
        PortAllocationError: If no candidate was free
    """
    if requested_port is not None:
        if is_port_available(requested_port, host):
            return requested_port
        LOG.warning(
            f"Port {requested_port} is already in use. Will try to find another port."
        )

    rng = rng or random
    min_port, max_port = port_range
    for _ in range(max_attempts):
        candidate = rng.randint(min_port, max_port)
        if is_port_available(candidate, host):
            return candidate
        LOG.debug(f"Port {candidate} is already in use. Trying another port.")

    raise PortAllocationError(
        f"No available ports found in range {min_port}-{max_port} "
        f"after {max_attempts} attempts"
    )
