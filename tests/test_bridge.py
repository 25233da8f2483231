import asyncio

import pytest

from n2kserver import EventKind, N2KConfigurationError, ServerConfig, WireFormat
from n2kserver.bridge import N2KBridge, UpstreamClient, build_config, parse_args


# ============================
# Command line and config
# ============================

def test_defaults_without_config_file():
    config = build_config(parse_args([]))
    assert config["n2kserver"] == ServerConfig()
    assert "upstream" not in config


def test_command_line_overrides_config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("n2kserver:\n  port: 10110\n  format: pcdin\nlogging:\n  file: relay.log\n")

    config = build_config(parse_args([
        "--config", str(path), "--format", "ydraw", "--upstream", "gateway.local:1457", "--log-level", "debug",
    ]))

    assert config["n2kserver"].port == 10110
    assert config["n2kserver"].format == WireFormat.YDRAW
    assert config["upstream"] == {"host": "gateway.local", "port": 1457}
    assert config["logging"] == {"file": "relay.log", "level": "debug"}


@pytest.mark.parametrize("address", ["gateway.local", ":1457", "gateway.local:port"])
def test_invalid_upstream_address(address):
    with pytest.raises(N2KConfigurationError):
        build_config(parse_args(["--upstream", address]))


def test_unknown_format_is_rejected_by_argparse():
    with pytest.raises(SystemExit):
        parse_args(["--format", "nmea0183"])


def test_upstream_address():
    assert N2KBridge({}).upstream_address() is None
    assert N2KBridge({"upstream": {"host": "10.0.0.1", "port": 1457}}).upstream_address() == ("10.0.0.1", 1457)


@pytest.mark.parametrize("upstream", [
    {"host": "10.0.0.1"},
    {"host": "10.0.0.1", "port": 0},
    {"host": "10.0.0.1", "port": "1457"},
    "10.0.0.1:1457",
])
def test_invalid_upstream_config(upstream):
    with pytest.raises(N2KConfigurationError):
        N2KBridge({"upstream": upstream}).upstream_address()


# ============================
# Upstream gateway
# ============================

@pytest.mark.asyncio
async def test_upstream_relays_both_ways(bus, wait_until):
    received = []
    raw = []
    bus.subscribe(EventKind.RAW_OUTPUT, raw.append)

    async def gateway(reader, writer):
        writer.write(b"<0x09f11205> [2] 01 02\n")
        await writer.drain()
        while line := await reader.readline():
            received.append(line)
        writer.close()

    server = await asyncio.start_server(gateway, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = UpstreamClient("127.0.0.1", port, bus, reconnect_delay=0.05)
    task = asyncio.create_task(client.run())
    try:
        assert await wait_until(lambda: raw)
        assert raw[0].endswith(",2,127250,5,255,2,01,02")

        bus.publish(EventKind.N2K_OUT, "2025-01-01T12:34:56.789Z,2,127250,5,255,2,01,02")
        assert await wait_until(lambda: received)
        assert received == [b"2025-01-01T12:34:56.789Z,2,127250,5,255,2,01,02\n"]
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        server.close()
        await server.wait_closed()

    assert bus.subscriber_count(EventKind.N2K_OUT) == 0


@pytest.mark.asyncio
async def test_upstream_send_without_connection_drops(bus):
    client = UpstreamClient("127.0.0.1", 1, bus)
    client.send("2025-01-01T12:34:56.789Z,2,127250,5,255,2,01,02")


@pytest.mark.asyncio
async def test_upstream_reconnects_after_overlong_line(bus, wait_until):
    connections = []
    raw = []
    bus.subscribe(EventKind.RAW_OUTPUT, raw.append)

    async def gateway(reader, writer):
        connections.append(writer)
        try:
            if len(connections) == 1:
                writer.write(b"x" * 200000)
            else:
                writer.write(b"<0x09f11205> [2] 01 02\n")
            await writer.drain()
            while await reader.read(4096):
                pass
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(gateway, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = UpstreamClient("127.0.0.1", port, bus, reconnect_delay=0.05)
    task = asyncio.create_task(client.run())
    try:
        assert await wait_until(lambda: raw)
        assert len(connections) == 2
        assert raw[0].endswith(",2,127250,5,255,2,01,02")
        assert not task.done()
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_stop_survives_failed_upstream_task(caplog):
    bridge = N2KBridge({"n2kserver": ServerConfig(host="127.0.0.1", port=0)})

    async def broken():
        raise ValueError("gateway exploded")

    await bridge.start()
    bridge.upstream_task = asyncio.create_task(broken())
    await asyncio.sleep(0)

    await bridge.stop()

    assert "gateway exploded" in caplog.text
    assert not bridge.server.is_serving()
