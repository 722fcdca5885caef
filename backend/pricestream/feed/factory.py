"""Factory for creating value sources."""

from __future__ import annotations

import logging

from .config import StreamConfig
from .interface import ValueSource

logger = logging.getLogger(__name__)


def create_value_source(config: StreamConfig | None = None) -> ValueSource:
    """Create the appropriate value source for the configuration.

    PRICESTREAM_SOURCE picks the source explicitly. With the default "auto":
    - MASSIVE_API_KEY set and non-empty → MassiveValueSource (real prices)
    - Otherwise → SimulatorValueSource (GBM simulation)

    Returns an unstarted source. SubscriptionEngine.start() starts it.
    """
    config = config or StreamConfig()
    source = config.source
    if source == "auto":
        source = "massive" if config.massive_api_key else "simulator"

    if source == "massive":
        if not config.massive_api_key:
            raise ValueError("PRICESTREAM_SOURCE=massive requires MASSIVE_API_KEY")
        from .massive_client import MassiveValueSource

        logger.info("Value source: Massive API (real data, %.1fs polls)", config.massive_poll_interval)
        return MassiveValueSource(api_key=config.massive_api_key, poll_interval=config.massive_poll_interval)
    elif source == "tradingview":
        from .tradingview import TradingViewValueSource

        logger.info("Value source: TradingView scraper")
        return TradingViewValueSource(
            settle_delay=config.settle_delay,
            headless=config.scraper_headless,
            navigation_timeout=config.open_timeout,
        )
    else:
        from .simulator import SimulatorValueSource

        logger.info("Value source: GBM Simulator")
        return SimulatorValueSource(
            update_interval=config.poll_interval,
            settle_delay=config.settle_delay,
        )
