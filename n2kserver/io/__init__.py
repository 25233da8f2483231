"""
Stream-level plumbing.

This module contains the lowest-level components the server is built from:
- CanonicalBus, EventKind, Subscription - the in-process publish/subscribe channel
- LineFramer - newline framing of inbound socket bytes
"""

from .bus import CanonicalBus, EventKind, Subscription
from .framer import LineFramer

__all__ = [
    "CanonicalBus",
    "EventKind",
    "Subscription",
    "LineFramer",
]
