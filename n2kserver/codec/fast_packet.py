"""
NMEA 2000 fast packet transport.

Payloads longer than one CAN frame (8 bytes) travel as a "fast packet":
- Frame 0:  [seq<<5 | 0, total_length, 6 data bytes]
- Frame n:  [seq<<5 | n, 7 data bytes]
The last frame is padded with 0xFF.
"""

import time
from dataclasses import dataclass
from typing import Optional

from .message import CanHeader, CanonicalMessage, Const

# Taken from OpenCPN's FastMessage PGN list. These PGNs need reassembly.
FAST_PACKET_PGNS = frozenset({
    65240,
    126208,
    126464,
    126720,
    126996,
    126998,
    127233,
    127237,
    127489,
    127496,
    127506,
    128275,
    129029,
    129038,
    129039,
    129040,
    129041,
    129284,
    129285,
    129540,
    129793,
    129794,
    129795,
    129797,
    129798,
    129801,
    129802,
    129808,
    129809,
    129810,
    130065,
    130074,
    130323,
    130577,
    130820,
    130822,
    130824,
})

FIRST_FRAME_BYTES = 6
NEXT_FRAME_BYTES = 7
MAX_FAST_PACKET_LENGTH = FIRST_FRAME_BYTES + 31 * NEXT_FRAME_BYTES


def _pad(frame: bytes) -> bytes:
    return frame + bytes([0xFF] * (Const.MAX_CAN_DLC - len(frame)))


def split_fast_packet(data: bytes, sequence: int = 0) -> list[bytes]:
    """Split a payload into padded 8 byte fast packet frames"""
    if len(data) > MAX_FAST_PACKET_LENGTH:
        raise ValueError(f"Payload of {len(data)} bytes is too long for a fast packet")
    seq_bits = (sequence & 0x07) << 5
    frames = [_pad(bytes([seq_bits, len(data)]) + data[:FIRST_FRAME_BYTES])]
    frame_index = 1
    for i in range(FIRST_FRAME_BYTES, len(data), NEXT_FRAME_BYTES):
        frames.append(_pad(bytes([seq_bits | frame_index]) + data[i:i + NEXT_FRAME_BYTES]))
        frame_index += 1
    return frames


def frames_for(msg: CanonicalMessage, sequence: int = 0) -> list[bytes]:
    """CAN frame payloads needed to carry a message"""
    if len(msg.data) <= Const.MAX_CAN_DLC and msg.pgn not in FAST_PACKET_PGNS:
        return [msg.data]
    return split_fast_packet(msg.data, sequence)


class FastPacketAssembler:
    """Reassemble NMEA2000 fast packets from individual CAN frames."""

    @dataclass
    class _Entry:
        sid: int
        expected_length: int
        data: bytearray
        last_seen: float

    def __init__(self, timeout: float = 2.0) -> None:
        self._timeout = timeout
        self._entries: dict[tuple[int, int, int, int], FastPacketAssembler._Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _expire_old_entries(self) -> None:
        now = time.monotonic()
        stale = [
            key
            for key, entry in self._entries.items()
            if now - entry.last_seen > self._timeout
        ]
        for key in stale:
            del self._entries[key]

    def feed(self, header: CanHeader, data: bytes) -> Optional[bytes]:
        """Consume a CAN frame and return complete payload bytes when done."""
        if not data:
            return None
        self._expire_old_entries()

        sid = data[0]
        key = (header.pgn, header.source, header.destination, sid & 0xE0)
        frame_index = sid & 0x1F
        now = time.monotonic()

        if frame_index == 0:
            if len(data) < 2:
                return None
            expected = data[1]
            payload = bytearray(data[2:])
            if expected <= len(payload):
                self._entries.pop(key, None)
                return bytes(payload[:expected])
            self._entries[key] = FastPacketAssembler._Entry(
                sid=sid, expected_length=expected, data=payload, last_seen=now
            )
            return None

        entry = self._entries.get(key)
        if not entry:
            return None
        if ((entry.sid + 1) & 0xFF) != sid:
            del self._entries[key]
            return None

        entry.sid = sid
        entry.last_seen = now
        entry.data.extend(data[1:])

        if len(entry.data) >= entry.expected_length:
            payload = bytes(entry.data[: entry.expected_length])
            del self._entries[key]
            return payload
        return None

    def clear(self) -> None:
        self._entries.clear()
