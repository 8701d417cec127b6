from __future__ import annotations

import socket
from threading import RLock

__all__ = ["ConnectionRegistry"]


class ConnectionRegistry:
    """
    Provides a thread-safe mapping from digest to the socket of the session
    that negotiated it.

    A repeated digest replaces the previous socket without closing it. Nothing
    is ever evicted: whoever fetches a socket owns it and is responsible for
    closing it.
    """

    def __init__(self) -> None:
        self._container: dict[str, socket.socket] = {}
        self.lock = RLock()

    def put(self, digest: str, sock: socket.socket) -> None:
        with self.lock:
            self._container[digest] = sock

    def get(self, digest: str) -> socket.socket | None:
        with self.lock:
            return self._container.get(digest)

    def __contains__(self, digest: object) -> bool:
        with self.lock:
            return digest in self._container

    def __len__(self) -> int:
        with self.lock:
            return len(self._container)

    def digests(self) -> list[str]:
        with self.lock:
            return list(self._container)
