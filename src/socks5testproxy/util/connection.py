from __future__ import annotations

import logging
import socket
import sys

log = logging.getLogger(__name__)


def _resolves_to_ipv6(host: str) -> bool:
    """Returns True if the system resolves host to an IPv6 address by default."""
    resolves_to_ipv6 = False
    try:
        for res in socket.getaddrinfo(host, None, socket.AF_UNSPEC):
            af, _, _, _, _ = res
            if af == socket.AF_INET6:
                resolves_to_ipv6 = True
    except socket.gaierror:
        pass

    return resolves_to_ipv6


def _has_ipv6(host: str) -> bool:
    """Returns True if the system can bind an IPv6 address."""
    sock = None
    has_ipv6 = False

    if socket.has_ipv6:
        # has_ipv6 returns true if cPython was compiled with IPv6 support.
        # It does not tell us if the system has IPv6 support enabled. To
        # determine that we must bind to an IPv6 address.
        try:
            sock = socket.socket(socket.AF_INET6)
            sock.bind((host, 0))
            has_ipv6 = _resolves_to_ipv6("localhost")
        except Exception:
            pass

    if sock:
        sock.close()
    return has_ipv6


# Some systems may have IPv6 support but DNS may not be configured
# properly. We can not count that localhost will resolve to ::1 on all
# systems.
HAS_IPV6_AND_DNS = _has_ipv6("localhost")
HAS_IPV6 = _has_ipv6("::1")


def _listener_family(host: str, use_ipv6: bool) -> socket.AddressFamily:
    if ":" in host:
        return socket.AF_INET6
    if host == "localhost" and use_ipv6:
        return socket.AF_INET6
    return socket.AF_INET


def create_listener(
    host: str = "localhost",
    port: int = 0,
    backlog: int = 5,
    use_ipv6: bool = HAS_IPV6_AND_DNS,
) -> socket.socket:
    """Bind and listen on ``(host, port)`` and return the socket.

    ``localhost`` binds the IPv6 loopback when the system both supports and
    resolves it, and the IPv4 loopback otherwise. Port 0 picks a free port,
    read it back with ``sock.getsockname()[1]``.
    """
    if host.startswith("["):
        host = host.strip("[]")
    family = _listener_family(host, use_ipv6)

    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        # Once listen() returns, the server socket is ready
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise

    log.debug("Listening on %s", sock.getsockname()[:2])
    return sock


def get_local_address() -> str | None:
    """Returns the address the local host name resolves to, or None."""
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return None
