import asyncio

import pytest
from fastapi.testclient import TestClient

from smartqueue.main import app
from smartqueue.schemas.queue import QueueStatusUpdate
from smartqueue.services.realtime import (
    InMemoryQueueStatusHub, QueueStatusChannel, get_queue_status_source
)

class FailingSource:
    """Subscription whose listener dies after the first message."""

    async def subscribe(self, doctor_id):
        return self

    async def messages(self):
        yield QueueStatusUpdate(doctor_id=1, current_token=3)
        raise RuntimeError("connection lost")

    async def close(self):
        self.closed = True

class TestQueueStatusChannel:

    def test_delivers_updates_in_order(self):
        async def scenario():
            hub = InMemoryQueueStatusHub()
            async with QueueStatusChannel(hub, 7) as channel:
                subscribed = hub.subscriber_count(7)
                hub.publish(QueueStatusUpdate(doctor_id=7, current_token=1))
                hub.publish(QueueStatusUpdate(doctor_id=8, current_token=99))
                hub.publish(QueueStatusUpdate(doctor_id=7, current_token=2))
                first = await asyncio.wait_for(channel.get(), timeout=1)
                second = await asyncio.wait_for(channel.get(), timeout=1)
            return subscribed, first, second, hub.subscriber_count(7)

        subscribed, first, second, remaining = asyncio.run(scenario())

        assert subscribed == 1
        assert (first.current_token, second.current_token) == (1, 2)
        assert remaining == 0

    def test_each_channel_gets_every_update(self):
        async def scenario():
            hub = InMemoryQueueStatusHub()
            async with QueueStatusChannel(hub, 7) as one, QueueStatusChannel(hub, 7) as two:
                delivered = hub.publish(QueueStatusUpdate(doctor_id=7, current_token=5))
                got = [
                    await asyncio.wait_for(one.get(), timeout=1),
                    await asyncio.wait_for(two.get(), timeout=1),
                ]
            return delivered, got

        delivered, got = asyncio.run(scenario())

        assert delivered == 2
        assert [u.current_token for u in got] == [5, 5]

    def test_listener_failure_surfaces_to_consumer(self):
        source = FailingSource()

        async def scenario():
            async with QueueStatusChannel(source, 1) as channel:
                first = await asyncio.wait_for(channel.get(), timeout=1)
                with pytest.raises(RuntimeError, match="connection lost"):
                    await asyncio.wait_for(channel.get(), timeout=1)
            return first

        assert asyncio.run(scenario()).current_token == 3
        assert source.closed is True

    def test_get_outside_context(self):
        channel = QueueStatusChannel(InMemoryQueueStatusHub(), 1)

        with pytest.raises(RuntimeError):
            asyncio.run(channel.get())

    def test_publish_from_another_thread(self):
        async def scenario():
            hub = InMemoryQueueStatusHub()
            async with QueueStatusChannel(hub, 3) as channel:
                await asyncio.to_thread(hub.publish, QueueStatusUpdate(doctor_id=3, current_token=9))
                return await asyncio.wait_for(channel.get(), timeout=1)

        assert asyncio.run(scenario()).current_token == 9

class TestSharedSource:

    def test_app_lifespan_opens_and_releases_source(self, test_db):
        with TestClient(app) as client:
            hub = get_queue_status_source()
            assert isinstance(hub, InMemoryQueueStatusHub)
            assert client.get("/api/v1/info").json()["queue"] == {
                "minutes_per_patient": 3,
                "near_turn_threshold": 3,
            }

        # Shutdown drops the shared hub; the next app run gets a fresh one
        assert get_queue_status_source() is not hub
