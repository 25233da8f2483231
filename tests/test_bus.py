import asyncio
import logging
import threading

import pytest

from n2kserver import CanonicalBus, EventKind


def test_publish_reaches_subscribers_of_that_kind_only():
    bus = CanonicalBus()
    raw, out = [], []
    bus.subscribe(EventKind.RAW_OUTPUT, raw.append)
    bus.subscribe(EventKind.N2K_OUT, out.append)

    assert bus.publish(EventKind.RAW_OUTPUT, "frame") == 1
    assert raw == ["frame"]
    assert out == []


def test_unsubscribe_is_idempotent():
    bus = CanonicalBus()
    received = []
    sub = bus.subscribe(EventKind.N2K_OUT, received.append)
    assert bus.subscriber_count(EventKind.N2K_OUT) == 1

    assert bus.unsubscribe(sub) is True
    assert bus.unsubscribe(sub) is False
    assert bus.subscriber_count(EventKind.N2K_OUT) == 0

    assert bus.publish(EventKind.N2K_OUT, "text") == 0
    assert received == []


def test_failing_handler_does_not_stop_delivery(caplog):
    bus = CanonicalBus()
    received = []

    def broken(_):
        raise RuntimeError("boom")

    bus.subscribe(EventKind.RAW_OUTPUT, broken)
    bus.subscribe(EventKind.RAW_OUTPUT, received.append)

    with caplog.at_level(logging.ERROR):
        assert bus.publish(EventKind.RAW_OUTPUT, "frame") == 1
    assert received == ["frame"]
    assert "boom" in caplog.text


def test_unsubscribe_during_publish_skips_released_handler():
    bus = CanonicalBus()
    received = []
    subs = {}

    def first(payload):
        bus.unsubscribe(subs["second"])

    subs["first"] = bus.subscribe(EventKind.RAW_OUTPUT, first)
    subs["second"] = bus.subscribe(EventKind.RAW_OUTPUT, received.append)

    assert bus.publish(EventKind.RAW_OUTPUT, "frame") == 1
    assert received == []


def test_subscribe_during_publish_waits_for_next_event():
    bus = CanonicalBus()
    late = []

    def first(payload):
        bus.subscribe(EventKind.RAW_OUTPUT, late.append)

    bus.subscribe(EventKind.RAW_OUTPUT, first)
    bus.publish(EventKind.RAW_OUTPUT, "one")
    assert late == []


def test_publish_threadsafe_requires_a_loop():
    with pytest.raises(RuntimeError):
        CanonicalBus().publish_threadsafe(EventKind.N2K_OUT, "text")


@pytest.mark.asyncio
async def test_publish_threadsafe_delivers_on_loop(wait_until):
    loop = asyncio.get_running_loop()
    bus = CanonicalBus(loop=loop)
    received = []
    bus.subscribe(EventKind.N2K_OUT, lambda text: received.append((text, threading.current_thread())))

    thread = threading.Thread(target=bus.publish_threadsafe, args=(EventKind.N2K_OUT, "text"))
    thread.start()
    thread.join()

    assert await wait_until(lambda: received)
    assert received == [("text", threading.current_thread())]
