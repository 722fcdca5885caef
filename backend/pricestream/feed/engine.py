"""Subscription and fan-out engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .cache import ValueCache
from .config import StreamConfig
from .fanout import DeliveryLanes
from .interface import Listener, ValueSource
from .keys import Key, normalize_key
from .models import SessionState, SubscribeResult
from .registry import ListenerRegistry
from .session import Session
from .values import parse_price

logger = logging.getLogger(__name__)


class _KeySlot:
    """Per-key state guarded by the key's own lock."""

    __slots__ = ("key", "lock", "lanes", "state", "session", "opening", "waiting", "users")

    def __init__(self, key: Key, delivery_timeout: float) -> None:
        self.key = key
        self.lock = asyncio.Lock()
        self.lanes = DeliveryLanes(key, delivery_timeout)
        self.state = SessionState.ABSENT
        self.session: Session | None = None
        self.opening: asyncio.Task | None = None
        # Listeners queued behind an in-flight open; registered when it succeeds
        self.waiting: dict[Listener, None] = {}
        self.users = 0


class SubscriptionEngine:
    """Turns subscriptions into per-key polling sessions and fans out changes.

    For every key there is at most one Session. The first subscriber opens it
    (which is also how the key gets validated), later subscribers join it and
    get the cached value replayed, and the last unsubscribe closes it.

    Each key has its own asyncio.Lock, so keys never wait on each other. The
    lock only covers state transitions and scheduling deliveries; source I/O
    and the deliveries themselves run outside it. Per-listener delivery lanes
    keep a replay ahead of any later change sent to the same listener.

    Usage:
        engine = SubscriptionEngine(source, StreamConfig())
        await engine.start()
        result = await engine.subscribe("BINANCE", "BTCUSD", listener)
        ...
        await engine.unsubscribe("BINANCE", "BTCUSD", listener)
        await engine.shutdown()
    """

    def __init__(
        self,
        source: ValueSource,
        config: StreamConfig | None = None,
        cache: ValueCache | None = None,
    ) -> None:
        self._source = source
        self._config = config or StreamConfig()
        self._cache = cache or ValueCache()
        self._registry = ListenerRegistry()
        self._slots: dict[Key, _KeySlot] = {}
        self._started = False
        self._closed = False
        self._source_released = False

    @property
    def source(self) -> ValueSource:
        return self._source

    @property
    def config(self) -> StreamConfig:
        return self._config

    @property
    def cache(self) -> ValueCache:
        return self._cache

    @property
    def closed(self) -> bool:
        return self._closed

    def key(self, scope: str | None, symbol: str) -> Key:
        """Normalize a scope/symbol pair using this engine's default scope."""
        return normalize_key(symbol, scope, default_scope=self._config.default_scope)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Initialize the value source. Safe to call more than once."""
        if self._started:
            return
        await self._source.start()
        self._started = True
        logger.info("Subscription engine started with %s", type(self._source).__name__)

    async def shutdown(self) -> None:
        """Stop every poll task, close every session, then release the source."""
        self._closed = True
        logger.info("Shutting down subscription engine (%d keys)", len(self._slots))

        openings = [slot.opening for slot in self._slots.values() if slot.opening is not None]
        if openings:
            await asyncio.gather(*openings, return_exceptions=True)

        await asyncio.gather(*(self._close_key(key) for key in list(self._slots)))

        if not self._source_released:
            self._source_released = True
            try:
                await self._source.shutdown()
            except Exception:
                logger.exception("Error releasing value source")
        logger.info("Subscription engine shutdown complete")

    # --- Public API ---

    async def subscribe(self, scope: str | None, symbol: str, listener: Listener) -> SubscribeResult:
        """Attach listener to a key, opening (and validating) its session if needed.

        On success the listener has already received the current value when
        this returns. On failure nothing about the key is retained.
        """
        key = self.key(scope, symbol)
        if self._closed:
            return SubscribeResult.failure(key, "price stream is shutting down")
        logger.info("Subscription request for %s", key)

        opening = None
        async with self._hold(key) as slot:
            if slot.state is SessionState.OPEN:
                replay = self._attach(slot, listener)
            else:
                if slot.state is SessionState.ABSENT:
                    slot.state = SessionState.OPENING
                    slot.opening = asyncio.create_task(self._open_session(slot), name=f"open:{key}")
                slot.waiting[listener] = None
                opening = slot.opening

        if opening is None:
            await slot.lanes.wait(replay)
            return SubscribeResult.success(key)

        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            slot.waiting.pop(listener, None)
            raise

    async def unsubscribe(self, scope: str | None, symbol: str, listener: Listener) -> None:
        """Detach listener from a key; closes the session if it was the last one."""
        key = self.key(scope, symbol)
        logger.info("Unsubscribe request for %s", key)
        await self._detach(key, listener)

    async def unsubscribe_all(self, listener: Listener) -> list[Key]:
        """Detach listener from every key it is subscribed to or waiting on."""
        keys = set(self._registry.keys_for(listener))
        keys.update(slot.key for slot in self._slots.values() if listener in slot.waiting)
        detached = [key for key in sorted(keys) if await self._detach(key, listener)]
        if detached:
            logger.info("Detached %r from %d keys", listener, len(detached))
        return detached

    def current_value(self, scope: str | None, symbol: str) -> str | None:
        return self._cache.get(self.key(scope, symbol))

    # --- Introspection ---

    def state(self, key: Key) -> SessionState:
        slot = self._slots.get(key)
        return slot.state if slot else SessionState.ABSENT

    def has_session(self, key: Key) -> bool:
        return self.state(key) is SessionState.OPEN

    def listener_count(self, key: Key) -> int:
        return self._registry.listener_count(key)

    def active_keys(self) -> list[Key]:
        return sorted(key for key, slot in self._slots.items() if slot.state is SessionState.OPEN)

    # --- Per-key exclusion ---

    @asynccontextmanager
    async def _hold(self, key: Key) -> AsyncIterator[_KeySlot]:
        """Acquire key's lock, creating its slot on demand.

        The slot is dropped once it is ABSENT and nobody else holds or waits
        for it, so idle keys leave nothing behind.
        """
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _KeySlot(key, self._config.delivery_timeout)
        slot.users += 1
        try:
            async with slot.lock:
                yield slot
        finally:
            slot.users -= 1
            if slot.users == 0 and slot.state is SessionState.ABSENT and self._slots.get(key) is slot:
                del self._slots[key]

    # --- Session lifecycle ---

    async def _open_session(self, slot: _KeySlot) -> SubscribeResult:
        """OPENING → OPEN or OPENING → ABSENT. Runs once per open attempt."""
        key = slot.key
        initial, error = await self._open_source(key)
        replay = None

        async with self._hold(key):
            waiting = list(slot.waiting)
            slot.waiting.clear()
            slot.opening = None

            if initial is not None and waiting and not self._closed:
                session = Session(key, initial)
                slot.session = session
                slot.state = SessionState.OPEN
                self._cache.update(key, initial)
                for listener in waiting:
                    self._registry.register(key, listener)
                session.start(self._poll_loop(slot, session))
                logger.info("Initial price for %s: %s (%d listeners)", key, initial, len(waiting))
                replay = slot.lanes.fan_out(waiting, initial)
            else:
                if initial is not None:
                    # Opened fine, but every subscriber left (or we are shutting down)
                    await self._close_source(key)
                    error = "price stream is shutting down" if self._closed else f"subscription to {key} was cancelled"
                slot.state = SessionState.ABSENT

        if replay is None:
            return SubscribeResult.failure(key, error or f"Failed to verify ticker {key}")
        await slot.lanes.wait(replay)
        return SubscribeResult.success(key)

    async def _open_source(self, key: Key) -> tuple[str | None, str | None]:
        """Ask the source to open key. Returns (initial_value, None) or (None, reason)."""
        logger.info("Starting to poll %s", key)
        timeout = self._config.open_timeout
        try:
            result = await asyncio.wait_for(self._source.open(key), timeout)
        except asyncio.TimeoutError:
            logger.warning("Opening %s timed out after %.1fs", key, timeout)
            await self._close_source(key)
            return None, f"Timed out verifying ticker {key}"
        except Exception:
            logger.exception("Error opening session for %s", key)
            await self._close_source(key)
            return None, f"Failed to verify ticker {key}"

        initial = parse_price(result.initial_value) if result.ok else None
        if initial is None:
            logger.info("No price found for %s, invalid ticker", key)
            if result.ok:
                await self._close_source(key)
            return None, f"{key} is not a valid ticker or price data is not available"
        return initial, None

    def _attach(self, slot: _KeySlot, listener: Listener) -> list[asyncio.Task[bool]]:
        """Register listener on an OPEN key and schedule the cached value's replay.

        Caller holds the key's lock and awaits the returned delivery after
        releasing it.
        """
        if not self._registry.register(slot.key, listener):
            logger.debug("%r already subscribed to %s", listener, slot.key)
        value = self._cache.get(slot.key)
        if value is None:
            return []
        return [slot.lanes.schedule(listener, value)]

    async def _detach(self, key: Key, listener: Listener) -> bool:
        if key not in self._slots:
            return False
        async with self._hold(key) as slot:
            was_waiting = listener in slot.waiting
            slot.waiting.pop(listener, None)
            if not self._registry.unregister(key, listener):
                return was_waiting
            if self._registry.listener_count(key) == 0:
                await self._teardown(slot)
            return True

    async def _close_key(self, key: Key) -> None:
        if key not in self._slots:
            return
        async with self._hold(key) as slot:
            await self._teardown(slot)

    async def _teardown(self, slot: _KeySlot) -> None:
        """OPEN → CLOSING → ABSENT. Caller holds the key's lock.

        Bookkeeping is purged even if the source fails to close.
        """
        session = slot.session
        if slot.state is not SessionState.OPEN or session is None:
            return
        slot.state = SessionState.CLOSING
        logger.info("Stopping polling for %s", slot.key)
        try:
            await session.stop()
            await self._close_source(slot.key)
        finally:
            self._registry.discard(slot.key)
            self._cache.remove(slot.key)
            slot.session = None
            slot.state = SessionState.ABSENT

    async def _close_source(self, key: Key) -> None:
        timeout = self._config.close_timeout
        try:
            await asyncio.wait_for(self._source.close(key), timeout)
        except asyncio.TimeoutError:
            logger.warning("Closing %s timed out after %.1fs", key, timeout)
        except Exception:
            logger.exception("Error closing session for %s", key)

    # --- Polling ---

    async def _poll_loop(self, slot: _KeySlot, session: Session) -> None:
        """Poll on interval until the session is stopped. Ticks never overlap."""
        interval = self._source.poll_interval or self._config.poll_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self._poll_once(slot, session)
            except Exception:
                logger.exception("Poll tick failed for %s", slot.key)

    async def _poll_once(self, slot: _KeySlot, session: Session) -> bool:
        """One tick: read, compare with the cache, fan out on change.

        Returns True if a change was delivered.
        """
        key = slot.key
        value = await self._read(key)
        if value is None:
            return False

        async with slot.lock:
            if slot.session is not session or value == session.last_value:
                return False
            session.last_value = value
            self._cache.update(key, value)
            deliveries = slot.lanes.fan_out(self._registry.listeners(key), value)

        logger.debug("Price update for %s: %s", key, value)
        await slot.lanes.wait(deliveries)
        return True

    async def _read(self, key: Key) -> str | None:
        timeout = self._config.read_timeout
        try:
            raw = await asyncio.wait_for(self._source.read(key), timeout)
        except asyncio.TimeoutError:
            logger.warning("Reading %s timed out after %.1fs", key, timeout)
            return None
        except Exception as e:
            logger.warning("Error extracting price for %s: %s", key, e)
            return None

        value = parse_price(raw)
        if value is None:
            logger.debug("No usable reading for %s: %r", key, raw)
        return value
