"""
TCP listener.

N2KServer accepts client connections and creates one N2KSession per connection.
start() and stop() are its only lifecycle operations; both are safe to call in
any order and neither raises for transport problems.

Example usage:
async def main():
    bus = CanonicalBus()
    async with N2KServer(ServerConfig(port=3001, format=WireFormat.YDRAW), bus) as server:
        bus.publish(EventKind.RAW_OUTPUT, "2025-01-01T00:00:00.000Z,2,127250,5,255,2,01,02")
        await asyncio.sleep(3600)

asyncio.run(main())
"""

import asyncio
import logging
from typing import Optional

from ..config import ServerConfig
from ..io import CanonicalBus
from .session import N2KSession


class N2KServer:
    def __init__(self,
                 config: ServerConfig,
                 bus: CanonicalBus,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.bus = bus
        self.logger = logger or logging.getLogger(__name__)
        self._server: Optional[asyncio.Server] = None
        self._sessions: set[N2KSession] = set()

    @property
    def sessions(self) -> frozenset[N2KSession]:
        return frozenset(self._sessions)

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, which differs from the configured one when that is 0"""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> bool:
        """Bind and begin accepting; a bind failure is logged and returns False"""
        try:
            server = await asyncio.start_server(self._on_connection, self.config.host, self.config.port)
        except OSError as e:
            self.logger.error(f"Unable to listen on {self.config.host}:{self.config.port}: {e}")
            return False
        if self._server is not None:
            # A second start() that managed to bind (port 0); keep the first listener
            self.logger.warning("N2K server already running")
            server.close()
            return False
        self._server = server
        self.logger.debug(f"listening on {self.port}")
        return True

    async def stop(self) -> None:
        """Release every session and close the listening socket"""
        sessions = list(self._sessions)
        for session in sessions:
            session.release()
        if self._server is not None:
            self._server.close()
        for session in sessions:
            await session.close()
        self._sessions.clear()
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
            self.logger.debug("Stopped N2K server")

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        session = N2KSession(reader, writer, self.bus, self.config, logger=self.logger, on_close=self._on_close)
        self._sessions.add(session)
        session.start()

    def _on_close(self, session: N2KSession) -> None:
        self._sessions.discard(session)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
