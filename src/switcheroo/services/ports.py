"""Port allocator — claims a free private port for the new process.

The sweep starts just past the highest port still referenced by a rule,
which keeps the new port clear of rules about to be cleaned up, and wraps
around the range so any free slot is eventually found. Binding (not the
rule table) is the final arbiter: a sibling process or a lingering socket
may hold a port no rule mentions yet.
"""

from __future__ import annotations

import errno
import logging
import socket
from collections.abc import Callable, Collection

from switcheroo.config.models import PortRange
from switcheroo.domain.errors import BindError, PortExhaustedError
from switcheroo.infrastructure.sockets import bind_listener

logger = logging.getLogger(__name__)

Binder = Callable[[int, str], socket.socket]


def candidate_ports(in_use: Collection[int], port_range: PortRange) -> list[int]:
    """Return the sweep order: one full lap of the range.

    Examples:
        >>> candidate_ports({40400, 40401}, PortRange(min=40400, max=40403))
        [40402, 40403, 40400, 40401]
        >>> candidate_ports(set(), PortRange(min=40400, max=40402))
        [40400, 40401, 40402]
    """
    start = max(in_use) + 1 if in_use else port_range.min
    offset = start - port_range.min
    return [
        (offset + step) % port_range.size + port_range.min for step in range(port_range.size)
    ]


def allocate_port(
    in_use: Collection[int],
    port_range: PortRange,
    *,
    bind: Binder = bind_listener,
    host: str = "",
    log: logging.Logger | logging.LoggerAdapter | None = None,  # type: ignore[type-arg]
) -> tuple[int, socket.socket]:
    """Bind the first free port of the sweep and return ``(port, listener)``.

    Ports still referenced by a rule count as an attempt but are skipped
    without binding. ``EADDRINUSE`` advances the sweep; any other bind
    error aborts with BindError. A sweep with no successful bind raises
    PortExhaustedError.
    """
    log = log or logger
    attempts = 0
    for port in candidate_ports(in_use, port_range):
        attempts += 1
        if port in in_use:
            continue
        try:
            listener = bind(port, host)
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                log.debug("Port %d is already in use", port)
                continue
            raise BindError(f"binding port {port} failed: {exc}", port=port) from exc
        log.info("Port %d was allocated (attempts: %d)", port, attempts)
        return port, listener

    raise PortExhaustedError(
        f"found no available port in range {port_range}",
        port_min=port_range.min,
        port_max=port_range.max,
        attempts=attempts,
    )
