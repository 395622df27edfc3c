"""Listening-socket primitive used by the port allocator."""

from __future__ import annotations

import socket

DEFAULT_BACKLOG = 128


def bind_listener(port: int, host: str = "", *, backlog: int = DEFAULT_BACKLOG) -> socket.socket:
    """Bind and listen on TCP *port*; the socket is closed if either step fails.

    ``SO_REUSEADDR`` lets a port in TIME_WAIT be reused, but still refuses a
    port another socket is actively listening on (``EADDRINUSE``).
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock
