from __future__ import annotations

import hashlib
import logging
import os
import socket
import typing

from socks5testproxy import Socks5TestProxy

# We use timeouts in two different ways in our tests
#
# 1. To make sure that the operation times out, we can use a short timeout.
# 2. To make sure that the test does not hang even if the operation should
#    succeed, we want to use a long timeout, even more so on CI where tests
#    can be really slow
SHORT_TIMEOUT = 0.2
LONG_TIMEOUT = 5.0
if os.environ.get("CI") or os.environ.get("GITHUB_ACTIONS") == "true":
    LONG_TIMEOUT = 15.0

SOCKS_VERSION_SOCKS5 = b"\x05"
SOCKS_NEGOTIATION_NONE = b"\x00"
SOCKS_NEGOTIATION_PASSWORD = b"\x02"
SOCKS_CMD_CONNECT = 0x01


def make_digest(sid: str, initiator: str, target: str) -> str:
    """
    Builds a digest the way a bytestream initiator does: the hex SHA-1 of the
    session id and both endpoints' addresses.
    """
    return hashlib.sha1(f"{sid}{initiator}{target}".encode()).hexdigest()


def read_exactly(sock: socket.socket, amt: int) -> bytes:
    """
    Read *exactly* ``amt`` bytes from the socket ``sock``.
    """
    data = b""

    while amt > 0:
        chunk = sock.recv(amt)
        if not chunk:
            raise AssertionError(f"connection closed with {amt} bytes unread")
        data += chunk
        amt -= len(chunk)

    return data


def read_until_closed(sock: socket.socket) -> bytes:
    """
    Read from the socket until the peer closes it. A reset counts as closed.
    """
    chunks = []
    try:
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    except ConnectionResetError:
        pass
    return b"".join(chunks)


def build_greeting(methods: bytes = SOCKS_NEGOTIATION_NONE) -> bytes:
    return SOCKS_VERSION_SOCKS5 + bytes([len(methods)]) + methods


def build_connect_request(
    digest: str | bytes, port: int = 0, command: int = SOCKS_CMD_CONNECT
) -> bytes:
    addr = digest.encode("utf-8") if isinstance(digest, str) else digest
    return (
        bytes([0x05, command, 0x00, 0x03, len(addr)])
        + addr
        + port.to_bytes(2, "big")
    )


def open_client(proxy: Socks5TestProxy) -> socket.socket:
    sock = socket.create_connection(("localhost", proxy.port()), timeout=LONG_TIMEOUT)
    return sock


def socks5_connect(
    proxy: Socks5TestProxy, digest: str, port: int = 0
) -> tuple[socket.socket, bytes]:
    """
    Connect to ``proxy`` and run the client side of the handshake.

    Returns the client socket and the reply to the CONNECT request.
    """
    sock = open_client(proxy)
    try:
        sock.sendall(build_greeting())
        assert read_exactly(sock, 2) == SOCKS_VERSION_SOCKS5 + SOCKS_NEGOTIATION_NONE

        request = build_connect_request(digest, port)
        sock.sendall(request)
        reply = read_exactly(sock, len(request))
    except BaseException:
        sock.close()
        raise
    return sock, reply


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class LogRecorder:
    def __init__(self, target: logging.Logger = logging.root) -> None:
        super().__init__()
        self._target = target
        self._handler = _ListHandler()

    @property
    def records(self) -> list[logging.LogRecord]:
        return self._handler.records

    def install(self) -> None:
        self._target.addHandler(self._handler)

    def uninstall(self) -> None:
        self._target.removeHandler(self._handler)

    def __enter__(self) -> list[logging.LogRecord]:
        self.install()
        return self.records

    def __exit__(self, *exc_info: typing.Any) -> typing.Literal[False]:
        self.uninstall()
        return False
