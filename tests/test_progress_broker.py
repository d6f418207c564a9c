"""
Unit tests for ProgressBroker.

Tests cover:
- Delivery with and without a listener
- Single-subscriber replacement
- Drop-oldest buffering
- Terminal events
"""

import asyncio

import pytest

from alfred_api.services.progress_broker import ProgressBroker, Subscription


async def drain(subscription: Subscription) -> list[dict]:
    return [event async for event in subscription.events()]


class TestProgressBroker:

    def test_publish_without_listener_is_discarded(self):
        broker = ProgressBroker()
        assert broker.publish("r1", {"type": "step"}) is False

    @pytest.mark.asyncio
    async def test_events_in_order_until_terminal(self):
        broker = ProgressBroker()
        subscription = broker.register("r1")

        broker.publish("r1", {"type": "step", "order": 1})
        broker.publish("r1", {"type": "detail", "tools": ["Read"]})
        broker.publish("r1", {"type": "complete", "status": "completed"})

        events = await asyncio.wait_for(drain(subscription), timeout=1)
        assert [e["type"] for e in events] == ["step", "detail", "complete"]
        assert not broker.has_listener("r1")
        assert broker.publish("r1", {"type": "step"}) is False

    @pytest.mark.asyncio
    async def test_new_registration_replaces_old(self):
        broker = ProgressBroker()
        old = broker.register("r1")
        new = broker.register("r1")

        broker.publish("r1", {"type": "error", "message": "x"})

        assert await asyncio.wait_for(drain(old), timeout=1) == []
        assert await asyncio.wait_for(drain(new), timeout=1) == [{"type": "error", "message": "x"}]

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        broker = ProgressBroker(maxsize=2)
        subscription = broker.register("r1")

        for order in (1, 2, 3):
            broker.publish("r1", {"type": "step", "order": order})
        subscription.close()

        events = await asyncio.wait_for(drain(subscription), timeout=1)
        assert [e["order"] for e in events] == [3]
        assert subscription.dropped == 2

    @pytest.mark.asyncio
    async def test_unregister_stale_subscription_is_ignored(self):
        broker = ProgressBroker()
        old = broker.register("r1")
        broker.register("r1")

        broker.unregister("r1", old)

        assert broker.has_listener("r1")

    @pytest.mark.asyncio
    async def test_shutdown_closes_listeners(self):
        broker = ProgressBroker()
        subscription = broker.register("r1")

        await broker.shutdown()

        assert subscription.closed
        assert await asyncio.wait_for(drain(subscription), timeout=1) == []

    @pytest.mark.asyncio
    async def test_idle_listener_is_ended(self):
        broker = ProgressBroker(idle_timeout=0.05)
        subscription = broker.register("r1")

        broker.publish("r1", {"type": "step", "order": 1})
        events = await asyncio.wait_for(drain(subscription), timeout=1)

        assert [e["type"] for e in events] == ["step"]
