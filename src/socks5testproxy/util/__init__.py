from __future__ import annotations

from .connection import create_listener, get_local_address
from .wait import wait_for_read

__all__ = (
    "create_listener",
    "get_local_address",
    "wait_for_read",
)
