from __future__ import annotations

import select
import socket

__all__ = ["wait_for_read"]


# We only ever wait on the one listening socket, so the stateless select() and
# poll() calls beat setting up an epoll/kqueue object each time. poll() avoids
# select()'s limit on high-numbered file descriptors; Windows has no poll(),
# but its select() has no such limit either.
HAS_POLL = hasattr(select, "poll")


def wait_for_read(sock: socket.socket, timeout: float | None = None) -> bool:
    """Waits for reading to be available on a given socket.
    Returns True if the socket is readable, or False if the timeout expired.

    A listening socket is readable when a connection is waiting to be accepted.
    A closed socket raises ValueError.
    """
    if not HAS_POLL:
        return bool(select.select([sock], [], [], timeout)[0])

    poll_obj = select.poll()
    poll_obj.register(sock, select.POLLIN)
    # poll() takes its timeout in milliseconds
    return bool(poll_obj.poll(None if timeout is None else timeout * 1000))
