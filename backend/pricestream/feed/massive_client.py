"""Massive (Polygon.io) API client for real prices."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .interface import ValueSource
from .keys import Key
from .models import OpenResult
from .values import format_price

logger = logging.getLogger(__name__)

# Scopes that name a US stock venue; every other scope is treated as crypto.
STOCK_SCOPES = frozenset({"NASDAQ", "NYSE", "AMEX", "ARCA", "BATS", "US", "STOCKS"})


def market_ticker(key: Key) -> tuple[str, str]:
    """Map a Key to (market type, Massive ticker).

    BINANCE:BTCUSD → ("crypto", "X:BTCUSD"); NASDAQ:AAPL → ("stocks", "AAPL").
    """
    if key.scope in STOCK_SCOPES:
        return "stocks", key.symbol
    return "crypto", f"X:{key.symbol}"


class MassiveValueSource(ValueSource):
    """ValueSource backed by the Massive (Polygon.io) REST snapshot API.

    Each open key is polled with GET /v2/snapshot/locale/.../tickers/{ticker}.
    The RESTClient is synchronous, so every call runs in a worker thread and
    a slow response only stalls the key that asked for it.

    Rate limits:
      - Free tier: 5 req/min → poll every 15s (default)
      - Paid tiers: 2-5s or faster (PRICESTREAM_MASSIVE_POLL_INTERVAL)
    """

    def __init__(self, api_key: str, poll_interval: float = 15.0) -> None:
        self._api_key = api_key
        self.poll_interval = poll_interval
        self._client: Any = None  # Lazy import to avoid hard dependency at import time
        self._open: set[Key] = set()

    async def start(self) -> None:
        # Lazy import: only import massive when actually using real market data.
        from massive import RESTClient

        if self._client is None:
            self._client = RESTClient(api_key=self._api_key)
            logger.info("Massive client initialized")

    async def shutdown(self) -> None:
        self._open.clear()
        self._client = None
        logger.info("Massive client released")

    async def open(self, key: Key) -> OpenResult:
        if self._client is None:
            raise RuntimeError("Massive client not initialized")
        try:
            price = await self._fetch_price(key)
        except Exception as e:
            # Unknown tickers come back as 404s; treat any failure as invalid
            logger.warning("Massive: could not open %s: %s", key, e)
            return OpenResult.invalid()
        if price is None:
            return OpenResult.invalid()
        self._open.add(key)
        return OpenResult.valid(price)

    async def read(self, key: Key) -> str | None:
        if key not in self._open or self._client is None:
            return None
        return await self._fetch_price(key)

    async def close(self, key: Key) -> None:
        self._open.discard(key)

    def get_keys(self) -> list[Key]:
        return sorted(self._open)

    # --- Internal ---

    async def _fetch_price(self, key: Key) -> str | None:
        snapshot = await asyncio.to_thread(self._fetch_snapshot, key)
        try:
            price = snapshot.last_trade.price
        except (AttributeError, TypeError) as e:
            logger.debug("Massive: no last trade for %s: %s", key, e)
            return None
        if price is None:
            return None
        return format_price(float(price))

    def _fetch_snapshot(self, key: Key) -> Any:
        """Synchronous call to the Massive REST API. Runs in a thread."""
        from massive.rest.models import SnapshotMarketType

        market, ticker = market_ticker(key)
        market_type = SnapshotMarketType.STOCKS if market == "stocks" else SnapshotMarketType.CRYPTO
        return self._client.get_snapshot_ticker(market_type, ticker)
