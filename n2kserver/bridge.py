"""
Standalone host for the N2K server.

Connects to an upstream NMEA 2000 gateway over TCP (any dialect the codec
recognises), publishes what it hears onto a CanonicalBus, and serves that bus to
any number of TCP clients through an N2KServer. Whatever clients send is written
back to the gateway as canonical serial text.

    gateway ──TCP──> UpstreamClient ──RAW_OUTPUT──> N2KServer ──> client 1 (ydraw)
        ^                                               │     └──> client 2 (candump1)
        └───────────────── N2K_OUT <────────────────────┘

Usage:
    n2kserver --config config.yaml
    n2kserver --upstream 192.168.1.50:1457 --port 3001 --format ydraw
"""

import argparse
import asyncio
import dataclasses
import logging
from logging.handlers import RotatingFileHandler
from typing import Any, Optional, Sequence

from .codec import N2KDecoder, WireFormat, to_actisense_serial_format
from .config import ServerConfig, load_config
from .exceptions import N2KConfigurationError, N2KConnectionError
from .io import CanonicalBus, EventKind, LineFramer
from .server import N2KServer
from .utils import run_with_keyboard_interrupt


class Const:
    # Logging
    LOG_FILE = "n2kserver.log"
    LOG_MAX_BYTES = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT = 5
    LOG_FORMAT = "%(asctime)s\t%(levelname)s\t%(message)s"
    LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    # Upstream
    RECONNECT_DELAY = 3.0
    READ_SIZE = 4096
    MAX_LINE_LENGTH = 64 * 1024  # A gateway line longer than this drops the connection


class UpstreamClient:
    """TCP client for a gateway's text stream, reconnecting on failure."""

    def __init__(self,
                 host: str,
                 port: int,
                 bus: CanonicalBus,
                 reconnect_delay: float = Const.RECONNECT_DELAY,
                 logger: Optional[logging.Logger] = None,
                 max_line_length: int = Const.MAX_LINE_LENGTH):
        self.host = host
        self.port = port
        self.bus = bus
        self.reconnect_delay = reconnect_delay
        self.max_line_length = max_line_length
        self.logger = logger or logging.getLogger(__name__)
        self._writer: Optional[asyncio.StreamWriter] = None

    async def run(self) -> None:
        subscription = self.bus.subscribe(EventKind.N2K_OUT, self.send)
        try:
            while True:
                try:
                    reader, self._writer = await asyncio.open_connection(self.host, self.port)
                    self.logger.info(f"Connected to gateway at {self.host}:{self.port}")
                    await self._pump(reader)
                except (ConnectionError, OSError, N2KConnectionError) as e:
                    self.logger.warning(f"Gateway connection error: {e}")
                finally:
                    if self._writer:
                        self._writer.close()
                        try:
                            await self._writer.wait_closed()
                        except (ConnectionError, OSError):
                            pass
                        self._writer = None
                self.logger.info(f"Reconnecting to gateway in {self.reconnect_delay:.1f} seconds")
                await asyncio.sleep(self.reconnect_delay)
        finally:
            self.bus.unsubscribe(subscription)

    async def _pump(self, reader: asyncio.StreamReader) -> None:
        decoder = N2KDecoder()
        framer = LineFramer(max_line_length=self.max_line_length)
        while True:
            data = await reader.read(Const.READ_SIZE)
            if not data:
                raise ConnectionError("Gateway stream closed")
            for line in framer.feed(data):
                msg = decoder.decode(line)
                if msg is None:
                    continue
                self.bus.publish(EventKind.RAW_OUTPUT,
                                 to_actisense_serial_format(msg.pgn, msg.data, msg.dst, msg.src, msg.prio, msg.timestamp))

    def send(self, actisense: str) -> None:
        """N2K_OUT handler: forward to the gateway if connected"""
        if self._writer is None or self._writer.is_closing():
            self.logger.debug(f"Gateway not connected, dropping: {actisense}")
            return
        self._writer.write((actisense + "\n").encode("utf-8"))


class N2KBridge:
    """Owns the bus, the server and the optional upstream connection."""

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config
        self.server_config: ServerConfig = config.get("n2kserver") or ServerConfig()
        self.logger: logging.Logger = logging.getLogger("N2KBridge")
        self.bus: Optional[CanonicalBus] = None
        self.server: Optional[N2KServer] = None
        self.upstream: Optional[UpstreamClient] = None
        self.upstream_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # ================================
    #            CONFIG
    # ================================

    def upstream_address(self) -> Optional[tuple[str, int]]:
        upstream = self.config.get("upstream")
        if not upstream:
            return None
        if not isinstance(upstream, dict):
            raise N2KConfigurationError("upstream config must be a mapping")
        missing = [f for f in ("host", "port") if f not in upstream]
        if missing:
            raise N2KConfigurationError(f"Missing upstream config fields: {', '.join(missing)}")
        port = upstream["port"]
        if not isinstance(port, int) or not (1 <= port <= 65535):
            raise N2KConfigurationError(f"Invalid upstream port number: {port}")
        return str(upstream["host"]), port

    def setup_logging(self) -> None:
        """Configure logging with both file and console handlers."""
        log_config = self.config.get("logging") or {}
        level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)

        root = logging.getLogger()
        root.setLevel(level)

        # File handler
        file_handler = RotatingFileHandler(
            log_config.get("file", Const.LOG_FILE),
            maxBytes=Const.LOG_MAX_BYTES,
            backupCount=Const.LOG_BACKUP_COUNT
        )
        # Exclude debug messages
        file_handler.addFilter(lambda record: record.levelno != logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(fmt=Const.LOG_FORMAT, datefmt=Const.LOG_DATE_FORMAT))
        root.addHandler(file_handler)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(fmt=Const.LOG_FORMAT, datefmt=Const.LOG_DATE_FORMAT))
        root.addHandler(console_handler)

    # ================================
    #          INIT & RUN
    # ================================

    async def start(self) -> None:
        self.bus = CanonicalBus(logger=self.logger, loop=asyncio.get_running_loop())
        self.server = N2KServer(self.server_config, self.bus, logger=self.logger)
        await self.server.start()

        address = self.upstream_address()
        if address:
            self.upstream = UpstreamClient(*address, bus=self.bus, logger=self.logger)
            self.upstream_task = asyncio.create_task(self.upstream.run())

    async def run(self) -> None:
        self.setup_logging()
        self.logger.info("==================================== Starting N2KBridge ====================================")
        self._stop_event = asyncio.Event()
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()

    async def stop(self) -> None:
        """Clean shutdown of the bridge"""
        if self.upstream_task:
            self.upstream_task.cancel()
            try:
                await self.upstream_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.logger.error(f"Upstream client failed: {e}")
            self.upstream_task = None
        if self.server:
            await self.server.stop()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve an NMEA 2000 stream to TCP clients, each in its own wire format."
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--port", type=int, help="Listening port (default: 3001)")
    parser.add_argument("--format", choices=WireFormat.values(), help="Output format (default: actisense-n2k-ascii)")
    parser.add_argument("--upstream", help="Gateway to relay, as host:port")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument("--print-traffic", action="store_true", help="Print client traffic to the console")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> dict[str, Any]:
    """Merge a config file with command line overrides"""
    config: dict[str, Any] = load_config(args.config) if args.config else {"n2kserver": ServerConfig()}

    overrides: dict[str, Any] = {}
    if args.port is not None:
        overrides["port"] = args.port
    if args.format is not None:
        overrides["format"] = args.format
    if args.print_traffic:
        overrides["print_traffic"] = True
    if overrides:
        config["n2kserver"] = dataclasses.replace(config["n2kserver"], **overrides)

    if args.upstream:
        host, sep, port = args.upstream.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise N2KConfigurationError(f"Invalid upstream address: {args.upstream}. Use host:port")
        config["upstream"] = {"host": host, "port": int(port)}

    if args.log_level:
        config["logging"] = (config.get("logging") or {}) | {"level": args.log_level}
    return config


def main(argv: Optional[Sequence[str]] = None) -> None:
    bridge = N2KBridge(build_config(parse_args(argv)))
    run_with_keyboard_interrupt(bridge.run)


if __name__ == "__main__":
    main()
