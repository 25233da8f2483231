"""
Generic inbound decoder.

parse_n2k_string() recognises the wire dialect from the content of a single line,
never from what the receiving connection is configured to emit. Supported input:
- Canonical serial text   2016-02-28T19:57:02.364Z,2,127250,7,255,8,ff,10,3b,ff,7f,ce,f5,fc
- N2K ASCII               A173321.107 23FF7 1F513 012F3070002F30709F
- YDRAW                   17:33:21.107 R 09F51323 01 02 (time and direction optional)
- PCDIN                   $PCDIN,01F119,00000000,0F,2AAF00D1067414FF*59
- MXPGN                   $MXPGN,01F801,2801,C1308AC40C5DE343*19
- iKonvert                !PDGY,127250,2,5,255,0,AQI=
- candump1                <0x18eeff01> [8] 05 a0 be 1c 00 a0 a0 c0
- candump2                can0  09F8027F   [8]  00 FC FF FF 00 00 FF FF
- candump3                (1502979132.106111) slcan0 09F50374#000A00FFFF00FFFF

Malformed input yields None, never an exception.
"""

import base64
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from .fast_packet import FAST_PACKET_PGNS, FastPacketAssembler
from .message import CanHeader, CanonicalMessage, decode_can_id, iso_timestamp
from ..exceptions import N2KDecodeError
from ..utils import nmea_checksum

logger = logging.getLogger(__name__)

_HEX_BYTES = r"((?:[0-9A-Fa-f]{2}\s*)*)"
RE_N2K_ASCII = re.compile(r"^A(\d{6}\.\d{3}) ([0-9A-Fa-f]{5}) ([0-9A-Fa-f]{5}) ?([0-9A-Fa-f]*)$")
RE_YDRAW = re.compile(r"^(?:(\d{2}:\d{2}:\d{2}\.\d{3}) ([RT]) )?([0-9A-Fa-f]{8})((?: [0-9A-Fa-f]{2}){0,8})$")
RE_CANDUMP1 = re.compile(r"^<0x([0-9A-Fa-f]{1,8})>\s+\[(\d+)\]\s*" + _HEX_BYTES + r"$")
RE_CANDUMP2 = re.compile(r"^\S+\s+([0-9A-Fa-f]{8})\s+\[(\d+)\]\s*" + _HEX_BYTES + r"$")
RE_CANDUMP3 = re.compile(r"^\((\d+(?:\.\d+)?)\)\s+\S+\s+([0-9A-Fa-f]{3,8})#([0-9A-Fa-f]*)$")


def _split_checksum(line: str) -> str:
    """Verify an optional *XX suffix and return the sentence body"""
    if "*" not in line:
        return line
    body, checksum = line.rsplit("*", 1)
    if checksum.strip().upper() != nmea_checksum(body):
        raise N2KDecodeError(f"Bad checksum in {line!r}")
    return body


def _hex_list(text: str) -> bytes:
    return bytes(int(b, 16) for b in text.split())


def _from_can_frame(can_id: int, data: bytes, timestamp: Optional[str] = None) -> CanonicalMessage:
    header = decode_can_id(can_id)
    return CanonicalMessage(pgn=header.pgn, data=data, prio=header.priority,
                            src=header.source, dst=header.destination, timestamp=timestamp)


def parse_actisense(line: str) -> CanonicalMessage:
    parts = line.split(",")
    if len(parts) < 6:
        raise N2KDecodeError(f"Too few fields: {line!r}")
    timestamp = parts[0] or None
    prio, pgn, src, dst, length = (int(p) for p in parts[1:6])
    fields = parts[6:]
    if fields == [""]:
        fields = []
    data = bytes(int(f, 16) for f in fields)
    if len(data) != length:
        raise N2KDecodeError(f"Declared length {length} but {len(data)} bytes")
    return CanonicalMessage(pgn=pgn, data=data, prio=prio, src=src, dst=dst, timestamp=timestamp)


def parse_n2k_ascii(match: re.Match) -> CanonicalMessage:
    _, srcdstp, pgn, data = match.groups()
    if len(data) % 2:
        raise N2KDecodeError(f"Odd number of hex digits: {data!r}")
    return CanonicalMessage(
        pgn=int(pgn, 16),
        data=bytes.fromhex(data),
        src=int(srcdstp[0:2], 16),
        dst=int(srcdstp[2:4], 16),
        prio=int(srcdstp[4], 16),
    )


def parse_pcdin(line: str) -> CanonicalMessage:
    parts = _split_checksum(line).split(",")
    if len(parts) != 5:
        raise N2KDecodeError(f"Expected 5 PCDIN fields: {line!r}")
    _, pgn, _timer, src, data = parts
    return CanonicalMessage(pgn=int(pgn, 16), data=bytes.fromhex(data), src=int(src, 16))


def parse_mxpgn(line: str) -> CanonicalMessage:
    parts = _split_checksum(line).split(",")
    if len(parts) != 4:
        raise N2KDecodeError(f"Expected 4 MXPGN fields: {line!r}")
    _, pgn, attr_word, data = parts
    attr = int(attr_word, 16)
    send = (attr >> 15) & 0x01
    prio = (attr >> 12) & 0x07
    dlc = (attr >> 8) & 0x0F
    addr = attr & 0xFF
    payload = bytes(reversed(bytes.fromhex(data)))
    if len(payload) != dlc:
        raise N2KDecodeError(f"MXPGN length {dlc} but {len(payload)} bytes")
    if send:
        return CanonicalMessage(pgn=int(pgn, 16), data=payload, prio=prio, dst=addr)
    return CanonicalMessage(pgn=int(pgn, 16), data=payload, prio=prio, src=addr)


def parse_pdgy(line: str) -> CanonicalMessage:
    parts = line.split(",")
    match len(parts):
        case 7:
            _, pgn, prio, src, dst, _timer, data = parts
            return CanonicalMessage(pgn=int(pgn), data=base64.b64decode(data, validate=True),
                                    prio=int(prio), src=int(src), dst=int(dst))
        case 4:
            # Transmit form: !PDGY,<pgn>,<dst>,<data>
            _, pgn, dst, data = parts
            return CanonicalMessage(pgn=int(pgn), data=base64.b64decode(data, validate=True), dst=int(dst))
        case _:
            raise N2KDecodeError(f"Unexpected PDGY field count: {line!r}")


def _epoch_timestamp(epoch: str) -> str:
    try:
        when = datetime.fromtimestamp(float(epoch), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        # gmtime() reports an unrepresentable year as OSError (EOVERFLOW)
        raise N2KDecodeError(f"Bad candump timestamp {epoch!r}: {e}") from e
    return iso_timestamp(when)


def _checked_frame(can_id: str, dlc: str, data: str) -> tuple[int, bytes]:
    payload = _hex_list(data)
    if len(payload) != int(dlc):
        raise N2KDecodeError(f"DLC {dlc} but {len(payload)} bytes")
    return int(can_id, 16), payload


def _parse(line: str) -> tuple[CanonicalMessage, bool]:
    """Decode one line; the flag is True when the line held a single CAN frame"""
    line = line.strip()
    if not line:
        raise N2KDecodeError("Empty line")

    if line.startswith("$PCDIN"):
        return parse_pcdin(line), False
    if line.startswith("$MXPGN"):
        return parse_mxpgn(line), True
    if line.startswith("!PDGY"):
        return parse_pdgy(line), False

    if m := RE_CANDUMP1.match(line):
        return _from_can_frame(*_checked_frame(*m.groups())), True
    if m := RE_CANDUMP3.match(line):
        epoch, can_id, data = m.groups()
        if len(data) % 2:
            raise N2KDecodeError(f"Odd number of hex digits: {data!r}")
        return _from_can_frame(int(can_id, 16), bytes.fromhex(data), _epoch_timestamp(epoch)), True
    if m := RE_CANDUMP2.match(line):
        return _from_can_frame(*_checked_frame(*m.groups())), True
    if m := RE_N2K_ASCII.match(line):
        return parse_n2k_ascii(m), False
    if m := RE_YDRAW.match(line):
        _, _, can_id, data = m.groups()
        return _from_can_frame(int(can_id, 16), _hex_list(data)), True
    if "," in line:
        return parse_actisense(line), False

    raise N2KDecodeError(f"Unrecognised format: {line!r}")


def parse_n2k_string(line: str) -> Optional[CanonicalMessage]:
    """
    Decode a line in any supported dialect.

    Single CAN frame dialects (YDRAW, MXPGN, candump) return the frame as is;
    use N2KDecoder to coalesce fast packets.
    """
    try:
        msg, _ = _parse(line)
    except (N2KDecodeError, ValueError) as e:
        logger.debug(f"Ignoring undecodable line: {e}")
        return None
    return msg


class N2KDecoder:
    """
    Stateful decoder for one inbound stream.

    Fast packet PGNs arriving as single CAN frames are held until the whole
    payload has been seen. Not shared between connections.
    """

    def __init__(self, fast_packet_timeout: float = 2.0):
        self._assembler = FastPacketAssembler(timeout=fast_packet_timeout)

    @property
    def pending(self) -> int:
        return len(self._assembler)

    def decode(self, line: str) -> Optional[CanonicalMessage]:
        try:
            msg, single_frame = _parse(line)
        except (N2KDecodeError, ValueError) as e:
            logger.debug(f"Ignoring undecodable line: {e}")
            return None

        if not single_frame or msg.pgn not in FAST_PACKET_PGNS:
            return msg

        header = CanHeader(pgn=msg.pgn, source=msg.src, destination=msg.dst, priority=msg.prio)
        payload = self._assembler.feed(header, msg.data)
        if payload is None:
            return None
        return CanonicalMessage(pgn=msg.pgn, data=payload, prio=msg.prio,
                                src=msg.src, dst=msg.dst, timestamp=msg.timestamp)

    def reset(self) -> None:
        self._assembler.clear()
