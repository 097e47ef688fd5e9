"""Tests for the in-process push bus."""
import asyncio
import threading

from app.services.push_bus import EventKind, PushBus


async def _drain(subscription, count):
    events = []
    async for event in subscription:
        events.append(event)
        if len(events) == count:
            break
    return events


class TestPushBus:

    def test_events_are_scoped_to_their_room(self):
        async def scenario():
            bus = PushBus()
            room_a = bus.subscribe("a")
            room_b = bus.subscribe("b")

            assert bus.publish("a", EventKind.created, {"id": "m1"}) == 1
            bus.publish("b", EventKind.deleted, {"id": "m2"})

            [event_a] = await asyncio.wait_for(_drain(room_a, 1), timeout=1)
            [event_b] = await asyncio.wait_for(_drain(room_b, 1), timeout=1)
            assert (event_a.kind, event_a.row["id"]) == (EventKind.created, "m1")
            assert (event_b.kind, event_b.room_id) == (EventKind.deleted, "b")

        asyncio.run(scenario())

    def test_unsubscribe_is_idempotent_and_final(self):
        async def scenario():
            bus = PushBus()
            subscription = bus.subscribe("a")
            bus.publish("a", EventKind.created, {"id": "queued"})
            subscription.close()
            bus.unsubscribe(subscription)

            assert bus.publish("a", EventKind.created, {"id": "late"}) == 0
            assert await asyncio.wait_for(_drain(subscription, 1), timeout=1) == []
            assert bus.subscriber_count("a") == 0

        asyncio.run(scenario())

    def test_publish_from_worker_thread(self):
        async def scenario():
            bus = PushBus()
            subscription = bus.subscribe("a")
            worker = threading.Thread(target=bus.publish, args=("a", EventKind.created, {"id": "m1"}))
            worker.start()
            worker.join()

            [event] = await asyncio.wait_for(_drain(subscription, 1), timeout=1)
            assert event.row == {"id": "m1"}
            subscription.close()

        asyncio.run(scenario())
