"""
Minimal SOCKS5 server for tests: hands back the raw socket of every client that
completes a CONNECT handshake, keyed by the digest carried in the request.
"""

from __future__ import annotations

# Set default logging handler to avoid "No handler found" warnings.
import logging
import typing
from logging import NullHandler

from . import exceptions
from ._version import __version__
from .exceptions import (
    IncompleteHandshake,
    ProtocolViolation,
    Socks5TestProxyError,
    StartupTimeout,
)
from .negotiation import Session, negotiate
from .registry import ConnectionRegistry
from .server import SessionAcceptorThread, Socks5TestProxy

__license__ = "MIT"
__version__ = __version__

__all__ = (
    "ConnectionRegistry",
    "IncompleteHandshake",
    "ProtocolViolation",
    "Session",
    "SessionAcceptorThread",
    "Socks5TestProxy",
    "Socks5TestProxyError",
    "StartupTimeout",
    "add_stderr_logger",
    "exceptions",
    "negotiate",
)

logging.getLogger(__name__).addHandler(NullHandler())


def add_stderr_logger(
    level: int = logging.DEBUG,
) -> logging.StreamHandler[typing.TextIO]:
    """
    Helper for quickly adding a StreamHandler to the logger. Useful for
    debugging a test that hangs waiting on the proxy.

    Returns the handler after adding it.
    """
    # This method needs to be in this __init__.py to get the __name__ correct
    # even if the package is vendored within another package.
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.debug("Added a stderr logging handler to logger: %s", __name__)
    return handler


# ... Clean up.
del NullHandler
