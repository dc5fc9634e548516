"""Fan-out of live events to event-stream subscribers.

The registry only holds channel handles. Delivery is a non-blocking
``offer`` per channel, so one slow or dead subscriber is dropped instead of
stalling the others. Late joiners only see events broadcast after they
registered; nothing is replayed.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from wagate.logger import logger

HELLO_FRAME = f"event: hello\ndata: {json.dumps({'ok': True})}\n\n"


def encode_event(event_type: str, data: Any = None) -> str:
    """Frame an event for the text/event-stream wire format."""
    body: dict[str, Any] = {"type": event_type}
    if data is not None:
        body["data"] = data
    return f"data: {json.dumps(body)}\n\n"


class EventChannel(Protocol):
    def offer(self, frame: str) -> bool:
        """Queue *frame* without blocking. False means the channel is unusable."""
        ...

    def close(self) -> None: ...


class QueueChannel:
    """Bounded frame buffer drained by a single stream writer.

    Iterating yields frames until the channel is closed.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, frame: str) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Pending frames are dropped so the end-of-stream marker always fits.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def __aiter__(self) -> QueueChannel:
        return self

    async def __anext__(self) -> str:
        frame = await self._queue.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


@dataclass(frozen=True)
class Subscription:
    id: int


class SubscriberRegistry:
    def __init__(self) -> None:
        self._channels: dict[int, EventChannel] = {}  # insertion order = registration order
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._channels)

    def register(self, channel: EventChannel) -> Subscription:
        """Add *channel* and greet it with a ``hello`` frame."""
        with self._lock:
            subscription = Subscription(next(self._ids))
            self._channels[subscription.id] = channel
        self._deliver(subscription, channel, HELLO_FRAME)
        return subscription

    def unregister(self, subscription: Subscription) -> bool:
        """Remove a subscriber. Idempotent; returns False if already gone."""
        with self._lock:
            channel = self._channels.pop(subscription.id, None)
        if channel is None:
            return False
        try:
            channel.close()
        except Exception as exc:
            logger.warning(
                "Subscriber channel close failed", subscriber=subscription.id, err=str(exc)
            )
        return True

    def close_all(self) -> int:
        """Unregister every subscriber, ending their streams. Returns how many."""
        with self._lock:
            subscriptions = [Subscription(i) for i in self._channels]
        return sum(1 for subscription in subscriptions if self.unregister(subscription))

    def broadcast(self, event_type: str, data: Any = None) -> int:
        """Offer one event to every current subscriber, in registration order.

        Never raises. Returns the number of subscribers that accepted it.
        """
        frame = encode_event(event_type, data)
        with self._lock:
            snapshot = list(self._channels.items())
        delivered = 0
        for subscription_id, channel in snapshot:
            if self._deliver(Subscription(subscription_id), channel, frame):
                delivered += 1
        return delivered

    def _deliver(self, subscription: Subscription, channel: EventChannel, frame: str) -> bool:
        try:
            accepted = channel.offer(frame)
        except Exception as exc:
            logger.warning("Subscriber write failed", subscriber=subscription.id, err=str(exc))
            accepted = False
        if not accepted and self.unregister(subscription):
            logger.info(
                "Dropped unresponsive subscriber",
                subscriber=subscription.id,
                total=len(self._channels),
            )
        return accepted
