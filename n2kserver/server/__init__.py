"""
Connection layer.

This module contains the network-facing half of the relay:
- N2KServer - TCP listener and lifecycle
- N2KSession, SessionState - one connected client with its own format
"""

from .session import N2KSession, SessionState
from .server import N2KServer

__all__ = [
    "N2KServer",
    "N2KSession",
    "SessionState",
]
