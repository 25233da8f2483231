"""
In-process canonical bus.

A publish/subscribe channel carrying the two event kinds the relay cares about:
- RAW_OUTPUT - a frame received from the physical/virtual bus, as canonical
  serial text or as a structured RawFrame
- N2K_OUT - canonical serial text destined for the physical/virtual bus

Subscribers attach and detach at any time. Delivery is synchronous, on the
caller's thread, to a snapshot of the subscribers taken when publish() starts.

Example usage:
    bus = CanonicalBus()
    sub = bus.subscribe(EventKind.N2K_OUT, lambda text: print(text))
    bus.publish(EventKind.N2K_OUT, "2025-01-01T00:00:00.000Z,2,127250,5,255,2,01,02")
    bus.unsubscribe(sub)
"""

import asyncio
import logging
import traceback
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable, Optional


class EventKind(StrEnum):
    RAW_OUTPUT = "canboatjs:rawoutput"
    N2K_OUT = "nmea2000out"


@dataclass(eq=False)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()"""
    kind: EventKind
    handler: Callable[[Any], None]
    active: bool = True


class CanonicalBus:
    def __init__(self,
                 logger: Optional[logging.Logger] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.loop = loop
        self._subscribers: dict[EventKind, list[Subscription]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, handler: Callable[[Any], None]) -> Subscription:
        subscription = Subscription(kind=EventKind(kind), handler=handler)
        self._subscribers[subscription.kind].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Release a subscription. Returns False if it was already released."""
        if not subscription.active:
            return False
        subscription.active = False
        self._subscribers[subscription.kind].remove(subscription)
        return True

    def publish(self, kind: EventKind, payload: Any) -> int:
        """Deliver payload to every live subscriber of kind; returns the delivery count"""
        delivered = 0
        for subscription in list(self._subscribers[EventKind(kind)]):
            # Released by an earlier handler during this publish
            if not subscription.active:
                continue
            try:
                subscription.handler(payload)
                delivered += 1
            except Exception as e:
                self.logger.error(f"Bus handler for {kind} failed: {e}")
                self.logger.error(traceback.format_exc())
        return delivered

    def publish_threadsafe(self, kind: EventKind, payload: Any) -> None:
        """Publish from a thread other than the one running the event loop"""
        if self.loop is None:
            raise RuntimeError("Bus has no event loop to publish onto")
        self.loop.call_soon_threadsafe(self.publish, kind, payload)

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._subscribers[EventKind(kind)])
