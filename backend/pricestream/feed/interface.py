"""Abstract interfaces for value sources and listeners."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .keys import Key
from .models import OpenResult


class ValueSource(ABC):
    """Contract for whatever produces fresh values for a key.

    The engine drives the per-key lifecycle; the source only has to know how
    to open, read and close one key at a time. Implementations may be a REST
    poller, a simulator or a scraping session. The engine never cares which.

    Lifecycle:
        source = create_value_source(config)
        await source.start()
        result = await source.open(key)     # validates the key
        value = await source.read(key)      # called every poll tick
        await source.close(key)
        await source.shutdown()
    """

    # Seconds between reads this source can sustain; None defers to StreamConfig.poll_interval
    poll_interval: float | None = None

    async def start(self) -> None:
        """Acquire process-wide resources (clients, browsers). Default: nothing."""

    @abstractmethod
    async def open(self, key: Key) -> OpenResult:
        """Open a session for key and report whether it produces real data.

        Returning OpenResult.invalid() (or raising) rejects the key. The engine
        bounds this call with its open timeout.
        """

    @abstractmethod
    async def read(self, key: Key) -> str | None:
        """Read the current raw value for an open key. None means no reading."""

    @abstractmethod
    async def close(self, key: Key) -> None:
        """Release the session for key. Safe to call for keys that are not open."""

    async def shutdown(self) -> None:
        """Release process-wide resources. Default: nothing."""


class Listener(ABC):
    """A consumer that receives (key, value) notifications.

    Listeners are stored by identity, so registering the same object twice
    for a key never duplicates delivery.
    """

    @abstractmethod
    async def deliver(self, key: Key, value: str) -> None:
        """Receive one value for key. Exceptions are caught by the engine."""


class CallbackListener(Listener):
    """Adapts a plain function (sync or async) to the Listener interface."""

    def __init__(self, callback: Callable[[Key, str], Awaitable[None] | None], name: str | None = None) -> None:
        self._callback = callback
        self.name = name or getattr(callback, "__name__", "callback")

    async def deliver(self, key: Key, value: str) -> None:
        result = self._callback(key, value)
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        return f"CallbackListener({self.name})"
