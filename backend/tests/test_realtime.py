import asyncio
import threading
from datetime import datetime

import pytest

from workdesk.services.realtime import ChangeEvent, ChangeFeed


@pytest.mark.asyncio
async def test_subscriber_receives_matching_events():
    feed = ChangeFeed()
    async with feed.subscribe("projects", {"id": 1}) as subscription:
        assert feed.publish("projects", "update", {"id": 2, "status": "paid"}) == 0
        assert feed.publish("chat_messages", "insert", {"id": 1}) == 0
        assert feed.publish("projects", "update", {"id": 1, "status": "paid"}) == 1

        event = await asyncio.wait_for(subscription.get(), timeout=1)
        assert event == ChangeEvent("projects", "update", {"id": 1, "status": "paid"})


@pytest.mark.asyncio
async def test_subscription_removed_on_exit():
    feed = ChangeFeed()
    async with feed.subscribe("projects"):
        async with feed.subscribe("chat_messages", {"project_id": 3}):
            assert feed.subscriber_count == 2
        assert feed.subscriber_count == 1
    assert feed.subscriber_count == 0
    assert feed.publish("projects", "update", {"id": 1}) == 0


@pytest.mark.asyncio
async def test_subscription_removed_when_body_raises():
    feed = ChangeFeed()
    with pytest.raises(RuntimeError):
        async with feed.subscribe("projects"):
            raise RuntimeError("view crashed")
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_publish_from_another_thread():
    feed = ChangeFeed()
    async with feed.subscribe("chat_messages", {"project_id": 5}) as subscription:
        worker = threading.Thread(
            target=feed.publish,
            args=("chat_messages", "insert", {"id": 9, "project_id": 5}),
        )
        worker.start()
        worker.join()
        event = await asyncio.wait_for(subscription.get(), timeout=1)
        assert event.record["id"] == 9


@pytest.mark.asyncio
async def test_full_queue_drops_events():
    feed = ChangeFeed(max_queue=1)
    async with feed.subscribe("projects") as subscription:
        feed.publish("projects", "update", {"id": 1})
        feed.publish("projects", "update", {"id": 2})
        first = await asyncio.wait_for(subscription.get(), timeout=1)
        assert first.record["id"] == 1
        # Let the second hand-over run; it is dropped, not queued
        await asyncio.sleep(0)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(subscription.get(), timeout=0.05)


def test_event_json_serializes_datetimes():
    stamp = datetime(2025, 3, 1, 9, 30)
    event = ChangeEvent("projects", "update", {"id": 1, "updated_at": stamp})
    assert event.to_json() == {
        "table": "projects",
        "event": "update",
        "record": {"id": 1, "updated_at": "2025-03-01T09:30:00"},
    }
