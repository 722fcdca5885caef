"""Delivery of values to listeners with per-listener failure isolation."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Iterable, Sequence

from .interface import Listener
from .keys import Key

logger = logging.getLogger(__name__)


async def deliver_one(listener: Listener, key: Key, value: str, timeout: float) -> bool:
    """Deliver a single value. Returns False if the listener failed or stalled."""
    try:
        await asyncio.wait_for(listener.deliver(key, value), timeout)
    except asyncio.TimeoutError:
        logger.warning("Listener %r timed out receiving %s=%s", listener, key, value)
        return False
    except Exception:
        logger.exception("Error in price listener %r for %s", listener, key)
        return False
    return True


class DeliveryLanes:
    """Per-listener delivery order for one key.

    Every scheduled delivery runs as its own task, so listeners never wait on
    each other. A delivery to a listener starts only after the previous one to
    the same listener has finished, which keeps each listener's values in the
    order they were scheduled. Schedule while holding the key's lock so that
    order matches the order values were committed; await the tasks after
    releasing it.

    Usage:
        async with lock:
            deliveries = lanes.fan_out(listeners, value)
        await lanes.wait(deliveries)
    """

    def __init__(self, key: Key, timeout: float) -> None:
        self.key = key
        self.timeout = timeout
        self._tails: dict[Listener, asyncio.Task[bool]] = {}

    def schedule(self, listener: Listener, value: str) -> asyncio.Task[bool]:
        previous = self._tails.get(listener)
        task = asyncio.create_task(self._deliver_after(previous, listener, value), name=f"deliver:{self.key}")
        self._tails[listener] = task
        task.add_done_callback(functools.partial(self._release, listener))
        return task

    def fan_out(self, listeners: Iterable[Listener], value: str) -> list[asyncio.Task[bool]]:
        return [self.schedule(listener, value) for listener in listeners]

    async def wait(self, deliveries: Sequence[asyncio.Task[bool]]) -> int:
        """Wait for deliveries to finish. Returns the success count."""
        if not deliveries:
            return 0
        results = await asyncio.gather(*deliveries)
        delivered = sum(results)
        if delivered < len(deliveries):
            logger.debug("Delivered %s to %d/%d listeners", self.key, delivered, len(deliveries))
        return delivered

    async def _deliver_after(self, previous: asyncio.Task[bool] | None, listener: Listener, value: str) -> bool:
        if previous is not None:
            # asyncio.wait neither raises nor cancels previous
            await asyncio.wait([previous])
        return await deliver_one(listener, self.key, value, self.timeout)

    def _release(self, listener: Listener, task: asyncio.Task[bool]) -> None:
        if self._tails.get(listener) is task:
            del self._tails[listener]

    def __len__(self) -> int:
        return len(self._tails)
