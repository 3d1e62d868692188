import asyncio
import threading

import pytest
from amiya.core.event_manager import EventManager
from amiya.models.events import (
    BrightnessChanged,
    PopupRequested,
    PopupType,
    VolumeChanged,
)


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        EventManager(capacity=0)


def test_publish_without_subscribers_is_not_an_error():
    events = EventManager()
    assert events.publish(BrightnessChanged(level=10.0)) == 0


def test_late_subscriber_sees_only_later_events():
    events = EventManager()
    for level in (1.0, 2.0, 3.0):
        events.publish(BrightnessChanged(level=level))

    subscription = events.subscribe()
    assert subscription.try_recv() is None

    events.publish(BrightnessChanged(level=4.0))
    assert subscription.try_recv() == BrightnessChanged(level=4.0)
    assert subscription.try_recv() is None


def test_every_subscriber_gets_every_event_in_order():
    events = EventManager()
    first = events.subscribe()
    second = events.subscribe()

    published = [BrightnessChanged(level=float(n)) for n in range(5)]
    for event in published:
        assert events.publish(event) == 2

    assert [first.try_recv() for _ in published] == published
    assert [second.try_recv() for _ in published] == published


def test_slow_subscriber_drops_oldest_and_counts_lag():
    events = EventManager(capacity=3)
    slow = events.subscribe()
    for n in range(5):
        events.publish(BrightnessChanged(level=float(n)))

    assert slow.lagged == 2
    assert slow.pending() == 3
    assert slow.try_recv().level == 2.0


def test_closed_subscription_stops_receiving():
    events = EventManager()
    subscription = events.subscribe()
    subscription.close()

    assert events.subscriber_count() == 0
    assert events.publish(BrightnessChanged(level=1.0)) == 0
    assert subscription.try_recv() is None


@pytest.mark.asyncio
async def test_recv_waits_for_next_event():
    events = EventManager()
    subscription = events.subscribe()

    waiter = asyncio.create_task(subscription.recv())
    await asyncio.sleep(0)
    assert not waiter.done()

    events.publish(PopupRequested(popup_type=PopupType.WIFI))
    event = await asyncio.wait_for(waiter, 1)
    assert event == PopupRequested(popup_type=PopupType.WIFI)


@pytest.mark.asyncio
async def test_recv_wakes_up_for_publish_from_another_thread():
    events = EventManager()
    subscription = events.subscribe()

    waiter = asyncio.create_task(subscription.recv())
    await asyncio.sleep(0)
    publisher = threading.Thread(target=events.publish, args=(VolumeChanged(level=30.0, muted=False),))
    publisher.start()

    event = await asyncio.wait_for(waiter, 1)
    publisher.join()
    assert event.level == 30.0


@pytest.mark.asyncio
async def test_async_iteration_drains_then_ends_after_close():
    events = EventManager()
    subscription = events.subscribe()
    events.publish(BrightnessChanged(level=1.0))

    async def close_soon():
        await asyncio.sleep(0.01)
        events.publish(BrightnessChanged(level=2.0))
        subscription.close()

    closer = asyncio.create_task(close_soon())
    received = [event.level async for event in subscription]
    await closer
    assert received == [1.0, 2.0]


@pytest.mark.asyncio
async def test_concurrent_receivers_share_one_subscription():
    events = EventManager()
    subscription = events.subscribe()
    first = asyncio.create_task(subscription.recv())
    second = asyncio.create_task(subscription.recv())
    await asyncio.sleep(0)

    events.publish(BrightnessChanged(level=1.0))
    events.publish(BrightnessChanged(level=2.0))
    received = await asyncio.wait_for(asyncio.gather(first, second), 1)

    assert sorted(event.level for event in received) == [1.0, 2.0]


@pytest.mark.asyncio
async def test_close_wakes_every_receiver():
    events = EventManager()
    subscription = events.subscribe()
    waiting = [asyncio.create_task(subscription.recv()) for _ in range(3)]
    await asyncio.sleep(0)

    subscription.close()
    assert await asyncio.wait_for(asyncio.gather(*waiting), 1) == [None, None, None]
