"""
n2kserver Python Library

Relays one stream of NMEA 2000 PGNs to many TCP clients, each in the wire format
it asks for, and republishes whatever clients send back onto the stream.

This library provides three distinct layers:

1. **codec**: Wire formats (Actisense, N2K ASCII, YDRAW, PCDIN, MXPGN, iKonvert, candump)
2. **io**: The canonical publish/subscribe bus and newline framing
3. **server**: The TCP listener and per-connection sessions

Example usage:
    import n2kserver

    bus = n2kserver.CanonicalBus()
    config = n2kserver.ServerConfig(port=3001, format=n2kserver.WireFormat.CANDUMP1)
    async with n2kserver.N2KServer(config, bus) as server:
        bus.publish(n2kserver.EventKind.RAW_OUTPUT,
                    n2kserver.RawFrame(pgn=127250, prio=2, src=5, dst=255, data=["1", "2"], length=2))
"""

# Server (recommended for most users)
from .server import N2KServer, N2KSession, SessionState
from .config import ServerConfig, load_config

# Bus and framing
from .io import CanonicalBus, EventKind, Subscription, LineFramer

# Codec
from .codec import (
    WireFormat,
    CanonicalMessage,
    RawFrame,
    N2KDecoder,
    parse_n2k_string,
    encode,
    to_actisense_serial_format,
)

# Shared exceptions
from .exceptions import N2KError, N2KDecodeError, N2KConfigurationError, N2KConnectionError, N2KLineTooLongError

# Utilities
from .utils import run_with_keyboard_interrupt

__version__ = "0.1.0"

__all__ = [
    # Server
    "N2KServer",
    "N2KSession",
    "SessionState",
    "ServerConfig",
    "load_config",

    # Bus and framing
    "CanonicalBus",
    "EventKind",
    "Subscription",
    "LineFramer",

    # Codec
    "WireFormat",
    "CanonicalMessage",
    "RawFrame",
    "N2KDecoder",
    "parse_n2k_string",
    "encode",
    "to_actisense_serial_format",

    # Exceptions
    "N2KError",
    "N2KDecodeError",
    "N2KConfigurationError",
    "N2KConnectionError",
    "N2KLineTooLongError",

    # Utilities
    "run_with_keyboard_interrupt",
]
