"""In-process push channel: per-room subscriptions fed by message writes.

Writes happen in sync route handlers running on the threadpool, while
subscribers consume on the event loop, so delivery into a subscriber's queue
is scheduled with ``loop.call_soon_threadsafe``.
"""
import asyncio
import enum
import logging
import threading
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_CLOSED = object()


class EventKind(str, enum.Enum):
    created = "MessageCreated"
    deleted = "MessageDeleted"


class PushEvent(BaseModel):
    kind: EventKind
    room_id: str
    row: dict[str, Any]


class Subscription:
    """One room-scoped stream of ``PushEvent`` objects.

    Iterate it with ``async for``. Once closed it yields nothing more, even
    if events were already queued.
    """

    def __init__(self, bus: "PushBus", room_id: str, loop: asyncio.AbstractEventLoop):
        self.bus = bus
        self.room_id = room_id
        self.closed = False
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()

    def _put(self, item) -> None:
        if not self.closed or item is _CLOSED:
            self._queue.put_nowait(item)

    def deliver(self, event: PushEvent) -> None:
        if self.closed or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._put, event)

    def close(self) -> None:
        self.bus.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> PushEvent:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self.closed:
            raise StopAsyncIteration
        return item


class PushBus:
    """Multiplexes every room's events over one process-wide bus."""

    def __init__(self):
        self._subscriptions: dict[str, set[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, room_id: str) -> Subscription:
        """Open a subscription for ``room_id``; must be called from the event loop."""
        subscription = Subscription(self, room_id, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.setdefault(room_id, set()).add(subscription)
        logger.debug("Subscribed to room %s", room_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivery to ``subscription``. Safe to call more than once."""
        with self._lock:
            if subscription.closed:
                return
            subscription.closed = True
            subscribers = self._subscriptions.get(subscription.room_id)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscriptions[subscription.room_id]
        if not subscription._loop.is_closed():
            subscription._loop.call_soon_threadsafe(subscription._put, _CLOSED)
        logger.debug("Unsubscribed from room %s", subscription.room_id)

    def publish(self, room_id: str, kind: EventKind, row: dict[str, Any]) -> int:
        """Fan an event out to the room's subscribers. Returns how many were reached."""
        event = PushEvent(kind=kind, room_id=room_id, row=row)
        with self._lock:
            subscribers = list(self._subscriptions.get(room_id, ()))
        for subscription in subscribers:
            subscription.deliver(event)
        logger.debug("Published %s to room %s (%d subscribers)", kind.value, room_id, len(subscribers))
        return len(subscribers)

    def subscriber_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(room_id, ()))
