"""
Outbound wire format encoders.

Each encoder takes a CanonicalMessage and returns either a single line or a list
of lines (one per CAN frame for the frame oriented dialects). Lines carry no
trailing newline.

Example output for PGN 127250, priority 2, source 5, payload 01 02:
    actisense            2025-01-01T00:00:00.000Z,2,127250,5,255,2,01,02
    actisense-n2k-ascii  A000000.000 05FF2 1F112 0102
    ydraw                00:00:00.000 R 09F11205 01 02
    pcdin                $PCDIN,01F112,00000000,05,0102*<CS>
    mxpgn                $MXPGN,01F112,2205,0201*<CS>
    ikonvert             !PDGY,127250,2,5,255,0,AQI=
    candump1             <0x09f11205> [2] 01 02
    candump2             can0  09F11205   [2]  01 02
    candump3             (1735689600.000000) slcan0 09F11205#0102
"""

import base64
from datetime import datetime
from typing import Callable, Optional

from .fast_packet import frames_for
from .message import CanonicalMessage, encode_can_id, parse_timestamp, to_actisense_serial_format
from .types import WireFormat
from ..utils import nmea_checksum

EncoderResult = str | list[str]
Encoder = Callable[[CanonicalMessage], EncoderResult]


def _time_of_day(when: datetime, separator: str = ":") -> str:
    return f"{when:%H}{separator}{when:%M}{separator}{when:%S}.{when.microsecond // 1000:03d}"


def _ms_of_day(when: datetime) -> int:
    return ((when.hour * 60 + when.minute) * 60 + when.second) * 1000 + when.microsecond // 1000


def _can_id(msg: CanonicalMessage) -> int:
    return encode_can_id(msg.pgn, msg.src, msg.dst, msg.prio)


def encode_actisense(msg: CanonicalMessage) -> str:
    return to_actisense_serial_format(msg.pgn, msg.data, msg.dst, msg.src, msg.prio, msg.timestamp)


def encode_actisense_n2k_ascii(msg: CanonicalMessage) -> str:
    when = parse_timestamp(msg.timestamp)
    return " ".join([
        "A" + _time_of_day(when, separator=""),
        f"{msg.src & 0xFF:02X}{msg.dst & 0xFF:02X}{msg.prio & 0x0F:1X}",
        f"{msg.pgn:05X}",
        msg.data.hex().upper(),
    ])


def encode_ydraw(msg: CanonicalMessage) -> list[str]:
    """YDRAW as received from the gateway: time and direction prefix"""
    time_part = _time_of_day(parse_timestamp(msg.timestamp))
    can_id = _can_id(msg)
    return [
        f"{time_part} R {can_id:08X} " + " ".join(f"{b:02X}" for b in frame)
        for frame in frames_for(msg)
    ]


def encode_pcdin(msg: CanonicalMessage) -> str:
    timer = int(parse_timestamp(msg.timestamp).timestamp()) & 0xFFFFFFFF
    sentence = f"$PCDIN,{msg.pgn:06X},{timer:08X},{msg.src & 0xFF:02X},{msg.data.hex().upper()}"
    return f"{sentence}*{nmea_checksum(sentence)}"


def encode_mxpgn(msg: CanonicalMessage) -> list[str]:
    """
    Attribute word: [send:1][priority:3][dlc:4][address:8].
    Received frames carry the source address; data bytes are sent in reverse order.
    """
    lines = []
    for frame in frames_for(msg):
        attr = ((msg.prio & 0x07) << 12) | ((len(frame) & 0x0F) << 8) | (msg.src & 0xFF)
        sentence = f"$MXPGN,{msg.pgn:06X},{attr:04X},{bytes(reversed(frame)).hex().upper()}"
        lines.append(f"{sentence}*{nmea_checksum(sentence)}")
    return lines


def encode_pdgy(msg: CanonicalMessage) -> str:
    timer = _ms_of_day(parse_timestamp(msg.timestamp))
    payload = base64.b64encode(msg.data).decode("ascii")
    return f"!PDGY,{msg.pgn},{msg.prio},{msg.src},{msg.dst},{timer},{payload}"


def encode_candump1(msg: CanonicalMessage) -> list[str]:
    can_id = _can_id(msg)
    return [
        f"<0x{can_id:08x}> [{len(frame)}] " + " ".join(f"{b:02x}" for b in frame)
        for frame in frames_for(msg)
    ]


def encode_candump2(msg: CanonicalMessage) -> list[str]:
    can_id = _can_id(msg)
    return [
        f"can0  {can_id:08X}   [{len(frame)}]  " + " ".join(f"{b:02X}" for b in frame)
        for frame in frames_for(msg)
    ]


def encode_candump3(msg: CanonicalMessage) -> list[str]:
    epoch = parse_timestamp(msg.timestamp).timestamp()
    can_id = _can_id(msg)
    return [
        f"({epoch:.6f}) slcan0 {can_id:08X}#{frame.hex().upper()}"
        for frame in frames_for(msg)
    ]


# canboat has no encoder: the session passes the bus text through
ENCODERS: dict[str, Encoder] = {
    WireFormat.ACTISENSE: encode_actisense,
    WireFormat.ACTISENSE_N2K_ASCII: encode_actisense_n2k_ascii,
    WireFormat.YDRAW: encode_ydraw,
    WireFormat.PCDIN: encode_pcdin,
    WireFormat.MXPGN: encode_mxpgn,
    WireFormat.IKONVERT: encode_pdgy,
    WireFormat.CANDUMP1: encode_candump1,
    WireFormat.CANDUMP2: encode_candump2,
    WireFormat.CANDUMP3: encode_candump3,
}


def encode(msg: CanonicalMessage, wire_format: str) -> Optional[EncoderResult]:
    """Encode with the named format, None when the format has no encoder"""
    encoder = ENCODERS.get(wire_format)
    if encoder is None:
        return None
    return encoder(msg)
