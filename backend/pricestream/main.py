"""FastAPI application wiring for the price stream.

Run with:
    uvicorn pricestream.main:create_app --factory --port 8080
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .feed import StreamConfig, StreamHub, SubscriptionEngine, create_stream_router, create_value_source

logger = logging.getLogger(__name__)


def create_app(engine: SubscriptionEngine | None = None, config: StreamConfig | None = None) -> FastAPI:
    """Build the app. The engine and its source live as long as the app does."""
    if engine is None:
        config = config or StreamConfig()
        engine = SubscriptionEngine(create_value_source(config), config)
    hub = StreamHub(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await engine.start()
        logger.info("Ready to stream prices")
        try:
            yield
        finally:
            logger.info("Shutting down price stream")
            await hub.disconnect_all()
            await engine.shutdown()

    app = FastAPI(title="pricestream", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.state.engine = engine
    app.state.hub = hub
    app.include_router(create_stream_router(engine, hub))
    return app
