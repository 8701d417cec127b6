"""
Server side of the SOCKS5 subset spoken by the test proxy.

Only the "no authentication" method is offered and the CONNECT request is
expected to use the domain name address type. The domain name is not a host:
it carries the digest that identifies the session, and the request is echoed
back as the reply with its command byte replaced by a success status.

.. code-block:: text

    client -> 05 N METHODS[N]
    server -> 05 00                     (05 FF if 00 is not offered)
    client -> 05 CMD 00 03 LEN DIGEST[LEN] PORT[2]
    server -> 05 00  00 03 LEN DIGEST[LEN] PORT[2]
"""

from __future__ import annotations

import logging
import socket
import typing

from .exceptions import IncompleteHandshake, ProtocolViolation

__all__ = ["Session", "negotiate", "read_connect_request", "read_exactly"]

log = logging.getLogger(__name__)

SOCKS_VERSION_SOCKS5 = 0x05
SOCKS_NEGOTIATION_NONE = 0x00
SOCKS_NEGOTIATION_REJECTED = 0xFF
SOCKS_ATYP_DOMAINNAME = 0x03
SOCKS_REPLY_SUCCEEDED = 0x00

# VER CMD RSV ATYP LEN
_REQUEST_HEADER_LENGTH = 5
_PORT_LENGTH = 2


class Session(typing.NamedTuple):
    digest: str
    sock: socket.socket


def read_exactly(sock: socket.socket, amt: int) -> bytes:
    """
    Read *exactly* ``amt`` bytes from the socket ``sock``.

    Raises :class:`~socks5testproxy.exceptions.IncompleteHandshake` if the
    peer closes the connection first.
    """
    data = bytearray()

    while len(data) < amt:
        chunk = sock.recv(amt - len(data))
        if not chunk:
            raise IncompleteHandshake(bytes(data), amt)
        data += chunk

    return bytes(data)


def read_connect_request(sock: socket.socket) -> bytearray:
    """
    Read one CONNECT request frame, header through port.

    The frame is returned mutable so the caller can turn it into the reply.
    """
    header = read_exactly(sock, _REQUEST_HEADER_LENGTH)
    if header[3] != SOCKS_ATYP_DOMAINNAME:
        raise ProtocolViolation(
            f"unsupported address type: 0x{header[3]:02x} "
            f"(expected: 0x{SOCKS_ATYP_DOMAINNAME:02x})"
        )

    addr_len = header[4]
    frame = bytearray(header)
    frame += read_exactly(sock, addr_len + _PORT_LENGTH)
    return frame


def negotiate(sock: socket.socket) -> Session:
    """
    Run the SOCKS5 greeting and CONNECT request on a freshly accepted socket.

    On success the socket is left open and positioned right after the
    request, ready to carry raw session bytes. On failure the socket is left
    for the caller to close.

    :raises ProtocolViolation: the client does not speak the supported subset.
    :raises OSError: the connection failed or timed out mid-handshake.
    """
    version = read_exactly(sock, 1)[0]
    if version != SOCKS_VERSION_SOCKS5:
        raise ProtocolViolation(f"unsupported version: 0x{version:02x}")

    nmethods = read_exactly(sock, 1)[0]
    methods = read_exactly(sock, nmethods)

    if SOCKS_NEGOTIATION_NONE not in methods:
        sock.sendall(bytes([SOCKS_VERSION_SOCKS5, SOCKS_NEGOTIATION_REJECTED]))
        raise ProtocolViolation(
            f"no acceptable auth method among {methods.hex() or 'none'}"
        )

    sock.sendall(bytes([SOCKS_VERSION_SOCKS5, SOCKS_NEGOTIATION_NONE]))

    request = read_connect_request(sock)
    addr_len = request[4]
    try:
        digest = request[
            _REQUEST_HEADER_LENGTH : _REQUEST_HEADER_LENGTH + addr_len
        ].decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolViolation(f"digest is not valid UTF-8: {e}") from e

    request[1] = SOCKS_REPLY_SUCCEEDED
    sock.sendall(request)

    log.debug("Negotiated SOCKS5 session for digest %r", digest)
    return Session(digest, sock)
