from __future__ import annotations

import logging
import socket
import threading
import typing

from .exceptions import ProtocolViolation, StartupTimeout
from .negotiation import negotiate
from .registry import ConnectionRegistry
from .util.connection import create_listener, get_local_address
from .util.wait import wait_for_read

if typing.TYPE_CHECKING:
    from types import TracebackType

    from typing_extensions import Self

__all__ = ["SessionAcceptorThread", "Socks5TestProxy"]

log = logging.getLogger(__name__)

DEFAULT_STARTUP_TIMEOUT = 5.0
DEFAULT_HANDSHAKE_TIMEOUT = 5.0
DEFAULT_POLL_INTERVAL = 0.1


def _is_closed(sock: socket.socket) -> bool:
    return sock.fileno() == -1


class SessionAcceptorThread(threading.Thread):
    """
    Accepts connections on ``listener`` one at a time, negotiates each of them
    and stores the successful ones in ``registry``.

    :param listener: A bound, listening socket. The thread never closes it.
    :param registry: Where negotiated sockets are stored, keyed by digest.
    :param startup_event: Set after every successful handshake.
    :param handshake_timeout: Socket timeout applied while negotiating, so a
        stalled client cannot hold the loop forever.
    :param poll_interval: How long to wait for a pending connection before
        checking again whether the thread was asked to stop.
    """

    def __init__(
        self,
        listener: socket.socket,
        registry: ConnectionRegistry,
        startup_event: threading.Event,
        handshake_timeout: float | None = DEFAULT_HANDSHAKE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        super().__init__(name=f"socks5-acceptor-{listener.getsockname()[1]}")
        self.daemon = True

        self.listener = listener
        self.registry = registry
        self.startup_event = startup_event
        self.handshake_timeout = handshake_timeout
        self.poll_interval = poll_interval
        self.stop_event = threading.Event()

    def should_stop(self) -> bool:
        return self.stop_event.is_set() or _is_closed(self.listener)

    def run(self) -> None:
        while not self.should_stop():
            try:
                if not wait_for_read(self.listener, timeout=self.poll_interval):
                    continue
                sock, addr = self.listener.accept()
            except ConnectionError as e:
                # The client went away before we got to it.
                log.debug("Connection reset during accept: %s", e)
                continue
            except (OSError, ValueError) as e:
                # ValueError: the listener was closed under poll().
                if self.should_stop():
                    log.debug("Accept interrupted by shutdown: %s", e)
                    break
                log.warning("Failed to accept a connection: %s", e)
                continue

            self._handle(sock, addr)

        log.debug("Acceptor thread %s exiting", self.name)

    def _handle(self, sock: socket.socket, addr: typing.Any) -> None:
        log.debug("Accepted connection from %s", addr)
        try:
            sock.settimeout(self.handshake_timeout)
            digest, sock = negotiate(sock)
            # Hand the socket over in blocking mode.
            sock.settimeout(None)
        except (ProtocolViolation, OSError) as e:
            log.warning("SOCKS5 handshake with %s failed: %s", addr, e)
            sock.close()
            return

        self.registry.put(digest, sock)
        self.startup_event.set()
        log.debug("Registered session %r from %s", digest, addr)


class Socks5TestProxy:
    """
    Simple SOCKS5 proxy for testing purposes.

    Every client that completes the greeting and a CONNECT request has its
    socket stored under the digest it sent as the destination domain name.
    Tests fetch that socket with :meth:`get_connection` and talk to the client
    over it directly; nothing is relayed anywhere.

    The proxy starts accepting as soon as it is constructed. Use it as a
    context manager, or call :meth:`stop`, to shut it down::

        with Socks5TestProxy() as proxy:
            client = connect_through(proxy.port(), digest)
            server_side = proxy.get_connection(digest)

    :param listener: A bound, listening socket to accept on. A new one on a
        free port of ``host`` is created when omitted.
    :param host: Host to bind when no ``listener`` is given.
    :param handshake_timeout: Socket timeout while a client negotiates.
    :param poll_interval: How often the acceptor checks for shutdown.
    """

    def __init__(
        self,
        listener: socket.socket | None = None,
        *,
        host: str = "localhost",
        handshake_timeout: float | None = DEFAULT_HANDSHAKE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if listener is None:
            listener = create_listener(host)
        self._listener = listener
        self._registry = ConnectionRegistry()
        self._startup_complete = threading.Event()
        self._lock = threading.Lock()

        self._acceptor = SessionAcceptorThread(
            listener,
            self._registry,
            self._startup_complete,
            handshake_timeout=handshake_timeout,
            poll_interval=poll_interval,
        )
        self._acceptor.start()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(port={self.port()}, sessions={len(self._registry)})"

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> typing.Literal[False]:
        self.close()
        # Return False to re-raise any potential exceptions
        return False

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def digests(self) -> list[str]:
        """Digests of every session registered so far."""
        return self._registry.digests()

    def is_running(self) -> bool:
        """True until the listening socket is closed."""
        return not _is_closed(self._listener)

    @staticmethod
    def address() -> str | None:
        """
        Returns the host address of the local machine, or None if it cannot
        be resolved.
        """
        return get_local_address()

    def port(self) -> int:
        """
        Returns the port the proxy listens on, or -1 if it is not running.
        """
        if not self.is_running():
            return -1
        try:
            return typing.cast(int, self._listener.getsockname()[1])
        except OSError:
            # Closed after the check above.
            return -1

    def get_connection(
        self, digest: str, timeout: float = DEFAULT_STARTUP_TIMEOUT
    ) -> socket.socket | None:
        """
        Returns the socket registered for ``digest``, or None if no client
        ever sent that digest.

        Blocks until the first handshake of this proxy has completed, for at
        most ``timeout`` seconds. Only the first handshake gates the wait: a
        digest registered later is simply looked up.

        :raises StartupTimeout: no handshake completed within ``timeout``.
        """
        if not self._startup_complete.wait(timeout):
            raise StartupTimeout(timeout)
        return self._registry.get(digest)

    def stop(self) -> None:
        """
        Stops the proxy. If it is not running this method does nothing.

        Returns once the acceptor thread has exited, so the registry no longer
        changes afterwards. Sockets already handed out stay open.
        """
        with self._lock:
            if not self.is_running():
                return

            self._acceptor.stop_event.set()
            try:
                self._listener.close()
            except OSError:
                log.error("Failed to close the listening socket", exc_info=True)

            if (
                self._acceptor.is_alive()
                and self._acceptor is not threading.current_thread()
            ):
                self._acceptor.join()
            log.debug("Stopped %r", self)

    def close(self) -> None:
        self.stop()
