"""Tests for TradingViewValueSource (browser mocked)."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pricestream.feed.keys import Key
from pricestream.feed.tradingview import PRICE_SELECTORS, TradingViewValueSource

BTC = Key("BINANCE", "BTCUSD")
FAKE = Key("BINANCE", "FAKEUSD")


def _make_element(text: str | None) -> MagicMock:
    element = MagicMock()
    element.text_content = AsyncMock(return_value=text)
    return element


def _make_page(texts: dict[str, str | None]) -> MagicMock:
    """Create a mock page whose selectors resolve to elements with the given text."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.close = AsyncMock()

    async def query_selector(selector):
        if selector not in texts:
            return None
        return _make_element(texts[selector])

    page.query_selector = AsyncMock(side_effect=query_selector)
    return page


def _started_source(*pages: MagicMock) -> TradingViewValueSource:
    source = TradingViewValueSource(settle_delay=0.0)
    source._context = MagicMock()
    source._context.new_page = AsyncMock(side_effect=list(pages))
    return source


@pytest.mark.asyncio
class TestTradingViewValueSource:
    """Unit tests for the page scraper with a mocked browser."""

    async def test_open_reads_primary_selector(self):
        """Test that the last-price span validates the key."""
        page = _make_page({"span.js-symbol-last": " 42,000.50 "})
        source = _started_source(page)

        result = await source.open(BTC)

        assert result.ok
        assert result.initial_value == "42000.50"
        assert source.get_keys() == [BTC]
        page.goto.assert_awaited_once()
        assert page.goto.await_args.args[0] == "https://www.tradingview.com/symbols/BTCUSD/?exchange=BINANCE"

    async def test_fallback_selectors(self):
        """Test that later selectors are tried when earlier ones are missing or junk."""
        page = _make_page({"span.js-symbol-last": "—", '[class*="priceValue"]': "2500.1"})
        source = _started_source(page)

        result = await source.open(BTC)

        assert result.initial_value == "2500.1"

    async def test_page_without_price_is_invalid(self):
        """Test that a symbol page with no price rejects the key and closes the page."""
        page = _make_page({})
        source = _started_source(page)

        result = await source.open(FAKE)

        assert not result.ok
        page.close.assert_awaited_once()
        assert source.get_keys() == []

    async def test_navigation_error_is_invalid(self):
        """Test that a failed page load rejects the key."""
        page = _make_page({"span.js-symbol-last": "42000"})
        page.goto.side_effect = TimeoutError("navigation timeout")
        source = _started_source(page)

        result = await source.open(BTC)

        assert not result.ok
        page.close.assert_awaited_once()

    async def test_open_before_start_raises(self):
        """Test that opening without a browser fails loudly."""
        with pytest.raises(RuntimeError):
            await TradingViewValueSource().open(BTC)

    async def test_read_and_close(self):
        """Test reading an open page, then closing it."""
        texts = {PRICE_SELECTORS[0]: "42000"}
        page = _make_page(texts)
        source = _started_source(page)
        await source.open(BTC)

        texts[PRICE_SELECTORS[0]] = "42,100"
        assert await source.read(BTC) == "42100"

        await source.close(BTC)
        await source.close(BTC)
        page.close.assert_awaited_once()
        assert await source.read(BTC) is None

    async def test_shutdown_closes_pages_and_browser(self):
        """Test that shutdown() releases pages, context, browser and playwright."""
        page = _make_page({PRICE_SELECTORS[0]: "42000"})
        source = _started_source(page)
        context = source._context
        context.close = AsyncMock()
        source._browser = MagicMock(close=AsyncMock())
        browser = source._browser
        source._playwright = MagicMock(stop=AsyncMock())
        playwright = source._playwright
        await source.open(BTC)

        await source.shutdown()

        page.close.assert_awaited_once()
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert source.get_keys() == []
