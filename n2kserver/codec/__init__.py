"""
Wire codec.

This module contains the pure, connection-agnostic translation layer:
- CanonicalMessage, RawFrame - the canonical form every dialect maps to
- parse_n2k_string, N2KDecoder - generic inbound decoding
- ENCODERS, encode - outbound encoders, one per WireFormat
- Fast packet split and reassembly
"""

from .types import WireFormat, DEFAULT_FORMAT
from .message import (
    CanonicalMessage,
    RawFrame,
    RawOutput,
    CanHeader,
    encode_can_id,
    decode_can_id,
    iso_timestamp,
    bin_to_actisense,
    to_actisense_serial_format,
)
from .fast_packet import FAST_PACKET_PGNS, FastPacketAssembler, split_fast_packet, frames_for
from .encode import ENCODERS, encode
from .parse import parse_n2k_string, N2KDecoder

__all__ = [
    "WireFormat",
    "DEFAULT_FORMAT",
    "CanonicalMessage",
    "RawFrame",
    "RawOutput",
    "CanHeader",
    "encode_can_id",
    "decode_can_id",
    "iso_timestamp",
    "bin_to_actisense",
    "to_actisense_serial_format",
    "FAST_PACKET_PGNS",
    "FastPacketAssembler",
    "split_fast_packet",
    "frames_for",
    "ENCODERS",
    "encode",
    "parse_n2k_string",
    "N2KDecoder",
]
