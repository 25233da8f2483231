"""
One connected client.

This module implements the per-connection half of the relay using asyncio streams.
It contains the N2KSession class, which owns the client socket, one bus
subscription, one LineFramer and one N2KDecoder. Nothing here is shared with any
other session.

Terms:
- Raw output = a RAW_OUTPUT bus event (canonical text or a structured RawFrame)
- Outbound = bus -> client, re-encoded in the session's WireFormat
- Inbound = client -> bus, any recognised dialect, republished as canonical text

Lifecycle:
    CONNECTING --start()--> ACTIVE --end/error/close()--> CLOSING --> CLOSED
"""

import asyncio
import collections
import logging
from enum import Enum
from typing import Callable, Optional

from colorama import Fore, Style

from ..codec import (
    CanonicalMessage,
    N2KDecoder,
    RawFrame,
    RawOutput,
    WireFormat,
    bin_to_actisense,
    encode,
    iso_timestamp,
    parse_n2k_string,
    to_actisense_serial_format,
)
from ..config import ServerConfig
from ..exceptions import N2KLineTooLongError
from ..io import CanonicalBus, EventKind, LineFramer, Subscription


class SessionConst:
    READ_SIZE = 4096
    ECHO_MEMORY = 64  # Published messages remembered for echo suppression


class SessionState(Enum):
    CONNECTING = 0
    ACTIVE = 1
    CLOSING = 2
    CLOSED = 3


class N2KSession:
    def __init__(self,
                 reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 bus: CanonicalBus,
                 config: ServerConfig,
                 logger: Optional[logging.Logger] = None,
                 on_close: Optional[Callable[["N2KSession"], None]] = None):
        self.reader = reader
        self.writer = writer
        self.bus = bus
        self.config = config
        self.format: WireFormat = config.format
        self.logger = logger or logging.getLogger(__name__)
        self.peername = writer.get_extra_info("peername")
        self.state = SessionState.CONNECTING

        self._on_close = on_close
        self._subscription: Optional[Subscription] = None
        self._framer = LineFramer(max_line_length=config.max_line_length)
        self._decoder = N2KDecoder()
        self._echoes: collections.deque = collections.deque(maxlen=SessionConst.ECHO_MEMORY)
        self._task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"N2KSession({self._peer()}, {self.format}, {self.state.name})"

    def _peer(self) -> str:
        if isinstance(self.peername, tuple) and len(self.peername) >= 2:
            return f"{self.peername[0]}:{self.peername[1]}"
        return str(self.peername)

    # ============================
    # Lifecycle
    # ============================

    def start(self) -> None:
        """Subscribe to raw output and begin reading from the client"""
        if self.state != SessionState.CONNECTING:
            return
        self._subscription = self.bus.subscribe(EventKind.RAW_OUTPUT, self.handle_raw_output)
        self.state = SessionState.ACTIVE
        self.logger.debug(f"Connected : {self._peer()}")
        self._task = asyncio.create_task(self._consume())

    def release(self) -> None:
        """Drop the bus subscription and framing state. Safe to call more than once."""
        if self._subscription is not None:
            self.bus.unsubscribe(self._subscription)
            self._subscription = None
        self._framer.close()
        self._decoder.reset()

    async def close(self) -> None:
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self.state = SessionState.CLOSING
        self.release()
        if self._task and self._task is not asyncio.current_task():
            self._task.cancel()
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except Exception as e:
            self.logger.debug(f"Error: {self._peer()} {e}")
        self.state = SessionState.CLOSED
        self.logger.debug(f"Close: {self._peer()}")
        if self._on_close:
            self._on_close(self)

    async def wait_closed(self) -> None:
        if self._task:
            await asyncio.wait({self._task})

    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    # ============================
    # Inbound: client -> bus
    # ============================

    async def _consume(self) -> None:
        try:
            while True:
                data = await self.reader.read(SessionConst.READ_SIZE)
                if not data:
                    self.logger.debug(f"Ended: {self._peer()}")
                    break
                for line in self._framer.feed(data):
                    self.handle_line(line)
        except asyncio.CancelledError:
            pass
        except N2KLineTooLongError as e:
            self.logger.warning(f"Dropping {self._peer()}: {e}")
        except (ConnectionError, OSError) as e:
            self.logger.debug(f"Error: {self._peer()} {e}")
        finally:
            await self.close()

    def handle_line(self, line: str) -> Optional[str]:
        """Decode one framed line and republish it; undecodable lines are ignored"""
        msg = self._decoder.decode(line)
        if msg is None:
            return None
        self._print_traffic("IN ", line)
        actisense = to_actisense_serial_format(msg.pgn, msg.data, msg.dst, msg.src, msg.prio)
        if self.config.suppress_echo:
            self._echoes.append(msg.key())
        self.logger.debug(f"Emitting: {actisense}")
        self.bus.publish(EventKind.N2K_OUT, actisense)
        return actisense

    # ============================
    # Outbound: bus -> client
    # ============================

    def handle_raw_output(self, output: RawOutput) -> None:
        if self.state != SessionState.ACTIVE:
            return
        for line in self.render(output):
            self._write(line)

    def render(self, output: RawOutput) -> list[str]:
        """Lines to send for one raw output event, in the session's format"""
        if isinstance(output, RawFrame):
            try:
                text = bin_to_actisense(output, iso_timestamp())
            except ValueError as e:
                self.logger.debug(f"Dropping raw frame for {self._peer()}: {e}")
                return []
            fast_path = self.format == WireFormat.ACTISENSE
        else:
            text = output
            fast_path = False

        if fast_path and not self.config.suppress_echo:
            return [text]

        parsed = parse_n2k_string(text)
        if parsed is None:
            return []
        if self.config.suppress_echo and self._is_echo(parsed):
            return []
        if fast_path or self.format == WireFormat.CANBOAT:
            return [text]

        try:
            result = encode(parsed, self.format)
        except ValueError as e:
            # e.g. a payload too long to split into CAN frames
            self.logger.debug(f"Dropping {parsed.pgn} for {self._peer()}: {e}")
            return []

        match result:
            case str() as res:
                return [res]
            case list() as res:
                return res
            case _:
                return []

    def _is_echo(self, msg: CanonicalMessage) -> bool:
        key = msg.key()
        if key in self._echoes:
            self._echoes.remove(key)
            return True
        return False

    def _write(self, line: str) -> None:
        if self.writer.is_closing():
            return
        self._print_traffic("OUT", line)
        try:
            self.writer.write((line + "\n").encode("utf-8"))
        except (ConnectionError, RuntimeError) as e:
            self.logger.debug(f"Error: {self._peer()} {e}")

    def _print_traffic(self, direction: str, line: str) -> None:
        if self.config.print_traffic:
            print(Fore.MAGENTA + f"{direction} {self._peer()}".ljust(28)
                  + Fore.CYAN + Style.DIM + f"  {self.format}"
                  + Style.RESET_ALL + f"  {line}")
