from __future__ import annotations

import socket
import typing

import pytest

from socks5testproxy import Socks5TestProxy


@pytest.fixture
def proxy() -> typing.Generator[Socks5TestProxy, None, None]:
    with Socks5TestProxy() as proxy:
        yield proxy


@pytest.fixture
def spair() -> typing.Generator[tuple[socket.socket, socket.socket], None, None]:
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()
