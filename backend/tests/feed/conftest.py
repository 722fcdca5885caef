"""Fixtures for price feed tests.

FakeValueSource is a scripted in-memory ValueSource: tests set the value a
key will report and inspect which open/read/close calls the engine made.
"""

import asyncio

import pytest

from pricestream.feed.config import StreamConfig
from pricestream.feed.engine import SubscriptionEngine
from pricestream.feed.interface import Listener, ValueSource
from pricestream.feed.keys import Key
from pricestream.feed.models import OpenResult


class FakeValueSource(ValueSource):
    """ValueSource whose answers are set by the test."""

    def __init__(self) -> None:
        self.values: dict[str, str | None] = {}
        self.invalid: set[str] = set()
        self.open_delay = 0.0
        self.read_delays: dict[str, float] = {}
        self.close_delay = 0.0
        self.open_error: Exception | None = None
        self.read_error: Exception | None = None
        self.close_error: Exception | None = None
        self.open_calls: list[Key] = []
        self.read_calls: list[Key] = []
        self.close_calls: list[Key] = []
        self.started = False
        self.shut_down = False

    def set(self, key: str, value: str | None) -> None:
        self.values[key] = value

    async def start(self) -> None:
        self.started = True

    async def shutdown(self) -> None:
        self.shut_down = True

    async def open(self, key: Key) -> OpenResult:
        self.open_calls.append(key)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error:
            raise self.open_error
        if str(key) in self.invalid:
            return OpenResult.invalid()
        value = self.values.get(str(key))
        return OpenResult.valid(value) if value is not None else OpenResult.invalid()

    async def read(self, key: Key) -> str | None:
        self.read_calls.append(key)
        delay = self.read_delays.get(str(key))
        if delay:
            await asyncio.sleep(delay)
        if self.read_error:
            raise self.read_error
        return self.values.get(str(key))

    async def close(self, key: Key) -> None:
        self.close_calls.append(key)
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        if self.close_error:
            raise self.close_error


class RecordingListener(Listener):
    """Listener that remembers everything delivered to it."""

    def __init__(self, name: str = "listener") -> None:
        self.name = name
        self.received: list[tuple[Key, str]] = []

    async def deliver(self, key: Key, value: str) -> None:
        self.received.append((key, value))

    @property
    def values(self) -> list[str]:
        return [value for _, value in self.received]

    def __repr__(self) -> str:
        return f"RecordingListener({self.name})"


class FailingListener(Listener):
    """Listener whose delivery always raises."""

    def __init__(self) -> None:
        self.attempts = 0

    async def deliver(self, key: Key, value: str) -> None:
        self.attempts += 1
        raise RuntimeError("client went away")


async def _tick(engine: SubscriptionEngine, key: Key) -> bool:
    """Run one poll tick for key by hand (the test config never ticks on its own)."""
    slot = engine._slots[key]
    return await engine._poll_once(slot, slot.session)


@pytest.fixture
def config() -> StreamConfig:
    """Short timeouts, and a poll interval long enough that ticks are manual."""
    return StreamConfig(
        open_timeout=1.0,
        settle_delay=0.0,
        poll_interval=60.0,
        read_timeout=1.0,
        close_timeout=1.0,
        delivery_timeout=1.0,
    )


@pytest.fixture
def source() -> FakeValueSource:
    return FakeValueSource()


@pytest.fixture
def engine(source: FakeValueSource, config: StreamConfig) -> SubscriptionEngine:
    return SubscriptionEngine(source, config)


@pytest.fixture
def make_listener():
    """Factory for RecordingListener instances."""
    return RecordingListener


@pytest.fixture
def failing_listener() -> FailingListener:
    return FailingListener()


@pytest.fixture
def tick():
    return _tick
