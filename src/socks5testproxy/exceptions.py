from __future__ import annotations

from typing import Callable, Tuple

_TYPE_REDUCE_RESULT = Tuple[Callable[..., object], Tuple[object, ...]]

# Base Exceptions


class Socks5TestProxyError(Exception):
    """Base exception used by this module."""

    pass


# Leaf Exceptions


class ProtocolViolation(Socks5TestProxyError):
    """Raised when a client speaks something other than the supported SOCKS5 subset.

    Covers a wrong version byte, a greeting without the "no authentication"
    method, an address type other than a domain name, and a digest that is
    not valid UTF-8.
    """

    pass


class IncompleteHandshake(Socks5TestProxyError, OSError):
    """Raised when the peer closes the connection in the middle of a frame.

    Subclasses :class:`OSError` so callers can treat it like any other
    transport failure.
    """

    def __init__(self, partial: bytes, expected: int) -> None:
        self.partial = partial
        self.expected = expected
        super().__init__(
            f"IncompleteHandshake({len(partial)} bytes read, {expected} expected)"
        )

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.partial, self.expected)


class StartupTimeout(Socks5TestProxyError, TimeoutError):
    """Raised when no client completed a handshake before the deadline.

    Only the call that timed out fails; the proxy keeps accepting.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"Startup of the SOCKS5 test proxy failed within {timeout} seconds"
        )

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.timeout,)
