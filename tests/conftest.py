import asyncio

import pytest
import pytest_asyncio

from n2kserver import CanonicalBus, EventKind, N2KSession, ServerConfig


class FakeWriter:
    """Stands in for asyncio.StreamWriter, capturing everything written"""

    def __init__(self, peername=("127.0.0.1", 50000)):
        self.buffer = bytearray()
        self.closed = False
        self.peername = peername

    def get_extra_info(self, name, default=None):
        return self.peername if name == "peername" else default

    def write(self, data: bytes) -> None:
        self.buffer.extend(data)

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass

    def lines(self) -> list[str]:
        return self.buffer.decode("utf-8").splitlines()


async def _wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll predicate until it is true or timeout expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def bus():
    return CanonicalBus()


@pytest.fixture
def published(bus):
    """Everything published as N2K_OUT on the bus fixture"""
    events = []
    bus.subscribe(EventKind.N2K_OUT, events.append)
    return events


@pytest_asyncio.fixture
async def make_session(bus):
    sessions = []

    def factory(**config):
        reader = asyncio.StreamReader()
        writer = FakeWriter(peername=("127.0.0.1", 50000 + len(sessions)))
        session = N2KSession(reader, writer, bus, ServerConfig(**config))
        session.start()
        sessions.append(session)
        return session, reader, writer

    yield factory

    for session in sessions:
        await session.close()
