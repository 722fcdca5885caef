"""TradingView symbol page scraper built on Playwright."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .interface import ValueSource
from .keys import Key
from .models import OpenResult
from .values import parse_price

logger = logging.getLogger(__name__)

SYMBOL_URL = "https://www.tradingview.com/symbols/{symbol}/?exchange={scope}"

# Tried in order; the first element whose text parses as a price wins
PRICE_SELECTORS = (
    "span.js-symbol-last",
    "div.tv-symbol-price-quote__value",
    "span[data-symbol-last]",
    '[class*="priceValue"]',
)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TradingViewValueSource(ValueSource):
    """ValueSource that reads the last price off TradingView symbol pages.

    One headless browser is shared by every key; each open key gets its own
    page, navigated to the symbol on the key's exchange. The page keeps
    itself up to date, so a read only has to re-query the price element.

    Pages need a few seconds after DOMContentLoaded before the price shows
    up, which is what settle_delay waits for. A page without a price means
    the ticker does not exist on that exchange.
    """

    def __init__(self, settle_delay: float = 3.0, headless: bool = True, navigation_timeout: float = 30.0) -> None:
        self._settle_delay = settle_delay
        self._headless = headless
        self._navigation_timeout = navigation_timeout
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._pages: dict[Key, Any] = {}

    async def start(self) -> None:
        # Lazy import: playwright (and its browsers) are only needed for scraping
        from playwright.async_api import async_playwright

        if self._context is not None:
            return
        logger.info("Initializing browser...")
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self._headless, args=BROWSER_ARGS)
        self._context = await self._browser.new_context(user_agent=USER_AGENT)
        logger.info("Browser initialized successfully")

    async def shutdown(self) -> None:
        logger.info("Cleaning up browser resources...")
        for key in list(self._pages):
            await self.close(key)
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Cleanup complete")

    async def open(self, key: Key) -> OpenResult:
        if self._context is None:
            raise RuntimeError("Browser not initialized")

        page = await self._context.new_page()
        # Registered before navigating so close() can reach a page whose open timed out
        self._pages[key] = page
        url = SYMBOL_URL.format(symbol=key.symbol, scope=key.scope)
        logger.info("Navigating to %s", url)

        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self._navigation_timeout * 1000)
            await asyncio.sleep(self._settle_delay)
            price = await self._extract_price(page, key)
        except Exception as e:
            logger.warning("Error loading page for %s: %s", key, e)
            price = None

        if price is None:
            await self.close(key)
            return OpenResult.invalid()
        return OpenResult.valid(price)

    async def read(self, key: Key) -> str | None:
        page = self._pages.get(key)
        if page is None:
            return None
        return await self._extract_price(page, key)

    async def close(self, key: Key) -> None:
        page = self._pages.pop(key, None)
        if page is not None:
            await page.close()

    def get_keys(self) -> list[Key]:
        return sorted(self._pages)

    async def _extract_price(self, page: Any, key: Key) -> str | None:
        for selector in PRICE_SELECTORS:
            element = await page.query_selector(selector)
            if element is None:
                continue
            price = parse_price(await element.text_content())
            if price is not None:
                logger.debug("Extracted price for %s via %s: %s", key, selector, price)
                return price
        return None
