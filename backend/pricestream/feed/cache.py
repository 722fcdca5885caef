"""Thread-safe in-memory value cache."""

from __future__ import annotations

from threading import Lock

from .keys import Key


class ValueCache:
    """Last delivered value for every key with an open session.

    Writer: SubscriptionEngine (session open and poll ticks, one key at a time).
    Readers: current_value() lookups, SSE price endpoint.
    """

    def __init__(self) -> None:
        self._values: dict[Key, str] = {}
        self._lock = Lock()

    def update(self, key: Key, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def get(self, key: Key) -> str | None:
        with self._lock:
            return self._values.get(key)

    def remove(self, key: Key) -> None:
        with self._lock:
            self._values.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: Key) -> bool:
        with self._lock:
            return key in self._values
