"""Per-key listener sets."""

from __future__ import annotations

from .interface import Listener
from .keys import Key


class ListenerRegistry:
    """Maps each Key to the set of listeners interested in it.

    Membership is by listener identity. The registry does no locking of its
    own: SubscriptionEngine only mutates a key's set while holding that key's
    lock.
    """

    def __init__(self) -> None:
        self._listeners: dict[Key, set[Listener]] = {}

    def register(self, key: Key, listener: Listener) -> bool:
        """Add listener to key's set. Returns False if it was already there."""
        listeners = self._listeners.setdefault(key, set())
        if listener in listeners:
            return False
        listeners.add(listener)
        return True

    def unregister(self, key: Key, listener: Listener) -> bool:
        """Remove listener from key's set. Returns False if it was not registered.

        An emptied set is dropped so that `key in registry` tracks open sessions.
        """
        listeners = self._listeners.get(key)
        if not listeners or listener not in listeners:
            return False
        listeners.discard(listener)
        if not listeners:
            del self._listeners[key]
        return True

    def discard(self, key: Key) -> None:
        self._listeners.pop(key, None)

    def listeners(self, key: Key) -> tuple[Listener, ...]:
        """Snapshot of key's listeners, safe to iterate while the set changes."""
        return tuple(self._listeners.get(key, ()))

    def listener_count(self, key: Key) -> int:
        return len(self._listeners.get(key, ()))

    def keys_for(self, listener: Listener) -> list[Key]:
        """Every key the listener is registered for."""
        return [key for key, listeners in self._listeners.items() if listener in listeners]

    def keys(self) -> list[Key]:
        return list(self._listeners)

    def __contains__(self, key: Key) -> bool:
        return key in self._listeners

    def __len__(self) -> int:
        return len(self._listeners)
