"""
Canonical NMEA 2000 message model.

This module contains the types every wire format is translated to and from:
- CanonicalMessage - one decoded PGN (pgn, priority, source, destination, payload)
- RawFrame - a structured "raw frame received" bus event
- CanHeader - the fields packed into a 29-bit CAN identifier

Terms:
- Canonical serial text = "<timestamp>,<prio>,<pgn>,<src>,<dst>,<len>,<hex>,<hex>,..."
- PDU1 = destination specific PGN (PF < 240), PDU2 = broadcast PGN (PF >= 240)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..utils import hex_bytes


# Constants
class Const:
    """Constants shared by the codec"""
    BROADCAST = 255
    DEFAULT_PRIORITY = 2
    DEFAULT_SOURCE = 0
    MAX_CAN_DLC = 8
    PDU2_THRESHOLD = 240
    MAX_PGN = 0x3FFFF
    MAX_PRIORITY = 7


@dataclass
class CanonicalMessage:
    """A decoded PGN, independent of the wire format it arrived in"""
    pgn: int
    data: bytes | list[int]
    prio: int = Const.DEFAULT_PRIORITY
    src: int = Const.DEFAULT_SOURCE
    dst: int = Const.BROADCAST
    timestamp: Optional[str] = None
    length: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.pgn <= Const.MAX_PGN:
            raise ValueError(f"PGN {self.pgn} out of range")
        if not 0 <= self.prio <= Const.MAX_PRIORITY:
            raise ValueError(f"Priority {self.prio} out of range")
        for name in ("src", "dst"):
            if not 0 <= getattr(self, name) <= 0xFF:
                raise ValueError(f"{name} address {getattr(self, name)} out of range")
        # bytes() rejects values outside 0..255 with ValueError
        if not isinstance(self.data, bytes):
            self.data = bytes(self.data)
        if self.length is None:
            self.length = len(self.data)
        elif self.length != len(self.data):
            raise ValueError(f"Declared length {self.length} does not match {len(self.data)} payload bytes")

    def key(self) -> tuple[int, int, int, bytes]:
        """Identity used for echo matching"""
        return (self.pgn, self.src, self.dst, self.data)


@dataclass
class RawFrame:
    """
    Structured raw frame as delivered by the bus.

    Payload bytes arrive as hex strings which may be a single digit ("5"),
    or as plain integers.
    """
    pgn: int
    data: Sequence[str | int]
    prio: int = Const.DEFAULT_PRIORITY
    src: int = Const.DEFAULT_SOURCE
    dst: int = Const.BROADCAST
    length: Optional[int] = None

    def hex_data(self) -> list[str]:
        """Two digit hex per byte; raises ValueError for a value outside 0..255"""
        out = []
        for x in self.data:
            value = x if isinstance(x, int) else int(x, 16)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"Payload byte {x!r} out of range")
            if isinstance(x, int):
                out.append(f"{x:02x}")
            else:
                out.append("0" + x if len(x) == 1 else x)
        return out


# Union carried by "raw frame received" events
RawOutput = str | RawFrame


@dataclass(frozen=True)
class CanHeader:
    """Parsed information from a 29-bit CAN identifier."""
    pgn: int
    source: int
    destination: int
    priority: int


def decode_can_id(can_id: int) -> CanHeader:
    """Decode priority, PGN, destination, and source from a 29-bit CAN identifier."""
    source = can_id & 0xFF
    ps = (can_id >> 8) & 0xFF
    pf = (can_id >> 16) & 0xFF
    dp = (can_id >> 24) & 0x03
    priority = (can_id >> 26) & 0x07

    if pf < Const.PDU2_THRESHOLD:
        destination = ps
        pgn = (dp << 16) | (pf << 8)
    else:
        destination = Const.BROADCAST
        pgn = (dp << 16) | (pf << 8) | ps

    return CanHeader(pgn=pgn, source=source, destination=destination, priority=priority)


def encode_can_id(pgn: int, src: int, dst: int = Const.BROADCAST, prio: int = Const.DEFAULT_PRIORITY) -> int:
    """Pack a PGN and addresses into a 29-bit CAN identifier."""
    pf = (pgn >> 8) & 0xFF
    can_id = ((prio & 0x07) << 26) | (src & 0xFF)
    if pf < Const.PDU2_THRESHOLD:
        can_id |= (pgn & 0x3FF00) << 8
        can_id |= (dst & 0xFF) << 8
    else:
        can_id |= (pgn & 0x3FFFF) << 8
    return can_id


def iso_timestamp(when: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix"""
    when = when or datetime.now(timezone.utc)
    return when.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(timestamp: Optional[str]) -> datetime:
    """Best effort ISO-8601 parse; falls back to now"""
    if timestamp:
        try:
            when = datetime.fromisoformat(timestamp)
        except ValueError:
            return datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when
    return datetime.now(timezone.utc)


def bin_to_actisense(frame: RawFrame, timestamp: str) -> str:
    """Render a structured raw frame as canonical serial text"""
    length = frame.length if frame.length is not None else len(frame.data)
    return f"{timestamp},{frame.prio},{frame.pgn},{frame.src},{frame.dst},{length}," + ",".join(frame.hex_data())


def to_actisense_serial_format(pgn: int,
                               data: bytes,
                               dst: int = Const.BROADCAST,
                               src: int = Const.DEFAULT_SOURCE,
                               prio: int = Const.DEFAULT_PRIORITY,
                               timestamp: Optional[str] = None) -> str:
    """Canonical serial text of a decoded message"""
    timestamp = timestamp or iso_timestamp()
    return f"{timestamp},{prio},{pgn},{src},{dst},{len(data)},{hex_bytes(data)}"
