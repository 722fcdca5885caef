"""SSE streaming endpoints for live price updates."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .engine import SubscriptionEngine
from .interface import Listener
from .keys import InvalidKeyError, Key
from .models import PriceUpdate

logger = logging.getLogger(__name__)


class QueueListener(Listener):
    """One SSE connection's mailbox.

    Updates are buffered in a bounded queue; when a slow client lets it fill
    up, the oldest update is dropped so the engine never blocks on it.
    """

    def __init__(self, client_id: str, maxsize: int = 256) -> None:
        self.client_id = client_id
        self._queue: asyncio.Queue[PriceUpdate] = asyncio.Queue(maxsize=maxsize)
        self._last: dict[Key, str] = {}
        self.dropped = 0

    async def deliver(self, key: Key, value: str) -> None:
        update = PriceUpdate(key=key, value=value, previous_value=self._last.get(key))
        self._last[key] = value
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning("SSE client %s is lagging; dropped oldest update", self.client_id)
        self._queue.put_nowait(update)

    async def get(self) -> PriceUpdate:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def __repr__(self) -> str:
        return f"QueueListener({self.client_id})"


class StreamHub:
    """Tracks connected SSE clients and detaches them from the engine on exit."""

    def __init__(self, engine: SubscriptionEngine, queue_size: int = 256) -> None:
        self._engine = engine
        self._queue_size = queue_size
        self._clients: dict[str, QueueListener] = {}
        self._ids = itertools.count(1)

    def connect(self) -> QueueListener:
        listener = QueueListener(f"client-{next(self._ids)}", maxsize=self._queue_size)
        self._clients[listener.client_id] = listener
        logger.info("New SSE client connected: %s", listener.client_id)
        return listener

    def get(self, client_id: str) -> QueueListener | None:
        return self._clients.get(client_id)

    async def disconnect(self, client_id: str) -> None:
        listener = self._clients.pop(client_id, None)
        if listener is None:
            return
        await self._engine.unsubscribe_all(listener)
        logger.info("SSE client %s disconnected", client_id)

    async def disconnect_all(self) -> None:
        for client_id in list(self._clients):
            await self.disconnect(client_id)

    def __len__(self) -> int:
        return len(self._clients)


class SubscriptionRequest(BaseModel):
    client_id: str
    ticker: str
    exchange: str | None = None


def create_stream_router(engine: SubscriptionEngine, hub: StreamHub) -> APIRouter:
    """Create the streaming router bound to an engine and its client hub."""
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.get("/events")
    async def stream_events(request: Request) -> StreamingResponse:
        """SSE endpoint. The first event carries the client_id used to subscribe.

            event: connected
            data: {"client_id": "client-1"}

            data: {"ticker": "BTCUSD", "exchange": "BINANCE", "price": "42000.00", ...}
        """
        return StreamingResponse(
            _generate_events(hub, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.post("/subscribe")
    async def subscribe(body: SubscriptionRequest) -> JSONResponse:
        listener = hub.get(body.client_id)
        if listener is None:
            return JSONResponse({"error": f"Unknown client {body.client_id}"}, status_code=404)
        try:
            result = await engine.subscribe(body.exchange, body.ticker, listener)
        except InvalidKeyError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        if not result.ok:
            return JSONResponse({"error": result.error}, status_code=400)
        return JSONResponse({"success": True, "key": str(result.key)})

    @router.post("/unsubscribe")
    async def unsubscribe(body: SubscriptionRequest) -> JSONResponse:
        listener = hub.get(body.client_id)
        if listener is None:
            return JSONResponse({"error": f"Unknown client {body.client_id}"}, status_code=404)
        try:
            await engine.unsubscribe(body.exchange, body.ticker, listener)
        except InvalidKeyError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        return JSONResponse({"success": True})

    @router.get("/prices/{exchange}/{ticker}")
    async def current_price(exchange: str, ticker: str) -> JSONResponse:
        try:
            key = engine.key(exchange, ticker)
        except InvalidKeyError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        price = engine.current_value(key.scope, key.symbol)
        if price is None:
            return JSONResponse({"error": f"No live price for {key}"}, status_code=404)
        return JSONResponse({"key": str(key), "price": price})

    return router


async def _generate_events(
    hub: StreamHub,
    request: Request,
    interval: float = 1.0,
    keepalive_every: int = 15,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted price events for one client.

    Waits up to `interval` seconds for an update, then re-checks whether the
    client disconnected. A comment line goes out every `keepalive_every` idle
    waits so proxies keep the connection open.

    The client is registered with the hub only once the body starts streaming,
    so a request dropped before its first byte leaves nothing behind.
    """
    listener = hub.connect()
    idle = 0
    try:
        # Tell the client to retry after 1 second if the connection drops
        yield "retry: 1000\n\n"
        yield f"event: connected\ndata: {json.dumps({'client_id': listener.client_id})}\n\n"

        while True:
            if await request.is_disconnected():
                break
            try:
                update = await asyncio.wait_for(listener.get(), timeout=interval)
            except asyncio.TimeoutError:
                idle += 1
                if idle >= keepalive_every:
                    idle = 0
                    yield ": keepalive\n\n"
                continue
            idle = 0
            yield f"data: {json.dumps(update.to_dict())}\n\n"
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", listener.client_id)
        raise
    finally:
        await hub.disconnect(listener.client_id)
