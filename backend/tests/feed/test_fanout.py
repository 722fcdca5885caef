"""Tests for fan-out delivery and listener adapters."""

import asyncio

import pytest

from pricestream.feed.fanout import DeliveryLanes, deliver_one
from pricestream.feed.interface import CallbackListener, Listener
from pricestream.feed.keys import Key

BTC = Key("BINANCE", "BTCUSD")


class SlowListener(Listener):
    async def deliver(self, key, value):
        await asyncio.sleep(10)


class FirstIsSlowListener(Listener):
    """Takes a while with its first value, then answers instantly."""

    def __init__(self) -> None:
        self.values = []

    async def deliver(self, key, value):
        if not self.values and value == "1":
            await asyncio.sleep(0.05)
        self.values.append(value)


@pytest.mark.asyncio
class TestDeliveryLanes:
    """Unit tests for deliver_one and DeliveryLanes."""

    async def test_delivers_to_all(self, make_listener):
        """Test that every listener receives the value."""
        lanes = DeliveryLanes(BTC, timeout=1.0)
        listeners = [make_listener(), make_listener()]
        delivered = await lanes.wait(lanes.fan_out(listeners, "42000"))
        assert delivered == 2
        assert all(listener.received == [(BTC, "42000")] for listener in listeners)

    async def test_failure_is_isolated(self, make_listener, failing_listener):
        """Test that a raising listener does not block the others."""
        lanes = DeliveryLanes(BTC, timeout=1.0)
        healthy = make_listener()
        delivered = await lanes.wait(lanes.fan_out([failing_listener, healthy], "42000"))
        assert delivered == 1
        assert healthy.values == ["42000"]

    async def test_slow_listener_times_out(self, make_listener):
        """Test that a stalled listener is abandoned after the timeout."""
        lanes = DeliveryLanes(BTC, timeout=0.05)
        healthy = make_listener()
        delivered = await lanes.wait(lanes.fan_out([SlowListener(), healthy], "42000"))
        assert delivered == 1
        assert healthy.values == ["42000"]

    async def test_slow_listener_does_not_delay_others(self, make_listener):
        """Test that a healthy listener is served while a slow one is still pending."""
        lanes = DeliveryLanes(BTC, timeout=0.1)
        healthy = make_listener()
        deliveries = lanes.fan_out([SlowListener(), healthy], "42000")

        await asyncio.sleep(0.01)

        assert healthy.values == ["42000"]
        await lanes.wait(deliveries)

    async def test_same_listener_keeps_schedule_order(self):
        """Test that a second value waits for the first one to the same listener."""
        lanes = DeliveryLanes(BTC, timeout=1.0)
        listener = FirstIsSlowListener()

        first = lanes.schedule(listener, "1")
        second = lanes.schedule(listener, "2")
        await lanes.wait([second, first])

        assert listener.values == ["1", "2"]

    async def test_cancelled_delivery_releases_lane(self, make_listener):
        """Test that a cancelled delivery does not block later ones."""
        lanes = DeliveryLanes(BTC, timeout=0.1)
        slow, listener = SlowListener(), make_listener()
        stuck = lanes.schedule(slow, "1")
        stuck.cancel()

        assert await lanes.wait(lanes.fan_out([slow, listener], "2")) == 1
        assert stuck.cancelled()

    async def test_lanes_are_dropped_when_idle(self, make_listener):
        """Test that finished deliveries leave no per-listener state behind."""
        lanes = DeliveryLanes(BTC, timeout=1.0)
        await lanes.wait(lanes.fan_out([make_listener(), make_listener()], "42000"))
        await asyncio.sleep(0)
        assert len(lanes) == 0

    async def test_empty(self):
        """Test fanning out to nobody."""
        lanes = DeliveryLanes(BTC, timeout=1.0)
        assert await lanes.wait(lanes.fan_out([], "42000")) == 0

    async def test_deliver_one_reports_failure(self, failing_listener):
        """Test that deliver_one swallows and reports listener errors."""
        assert await deliver_one(failing_listener, BTC, "42000", timeout=1.0) is False


@pytest.mark.asyncio
class TestCallbackListener:
    """Unit tests for the CallbackListener adapter."""

    async def test_sync_callback(self):
        """Test wrapping a plain function."""
        seen = []
        listener = CallbackListener(lambda key, value: seen.append((key, value)))
        await listener.deliver(BTC, "42000")
        assert seen == [(BTC, "42000")]

    async def test_async_callback(self):
        """Test wrapping a coroutine function."""
        seen = []

        async def on_price(key, value):
            seen.append(value)

        listener = CallbackListener(on_price)
        await listener.deliver(BTC, "42000")
        assert seen == ["42000"]
        assert listener.name == "on_price"

    async def test_identity_distinguishes_same_callback(self):
        """Test that two adapters around one function are distinct listeners."""

        def callback(key, value):
            return None

        first, second = CallbackListener(callback), CallbackListener(callback)
        assert first != second
        assert len({first, second}) == 2
