"""GBM-based price simulator and the ValueSource built on it."""

from __future__ import annotations

import asyncio
import logging
import math
import random

import numpy as np

from .interface import ValueSource
from .keys import Key
from .models import OpenResult
from .seed_prices import (
    CORRELATION_GROUPS,
    CROSS_GROUP_CORR,
    DEFAULT_PARAMS,
    INTRA_CRYPTO_CORR,
    INTRA_FINANCE_CORR,
    INTRA_TECH_CORR,
    MAVERICK_CORR,
    MAVERICKS,
    SEED_PRICES,
    SYMBOL_PARAMS,
)
from .values import format_price

logger = logging.getLogger(__name__)


class GBMSimulator:
    """Geometric Brownian Motion simulator for correlated prices.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Where:
        S(t)   = current price
        mu     = annualized drift (expected return)
        sigma  = annualized volatility
        dt     = time step as fraction of a (24/7) year
        Z      = correlated standard normal random variable
    """

    SECONDS_PER_YEAR = 365 * 24 * 3600  # crypto never closes
    DEFAULT_DT = 0.5 / SECONDS_PER_YEAR  # ~1.59e-8

    def __init__(
        self,
        keys: list[Key],
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability

        self._keys: list[Key] = []
        self._prices: dict[Key, float] = {}
        self._params: dict[Key, dict[str, float]] = {}

        # Cholesky decomposition of the correlation matrix (for correlated moves)
        self._cholesky: np.ndarray | None = None

        for key in keys:
            self._add_key_internal(key)
        self._rebuild_cholesky()

    # --- Public API ---

    def step(self) -> dict[Key, float]:
        """Advance every key by one time step. Returns {key: new_price}."""
        n = len(self._keys)
        if n == 0:
            return {}

        z_independent = np.random.standard_normal(n)
        if self._cholesky is not None:
            z_correlated = self._cholesky @ z_independent
        else:
            z_correlated = z_independent

        result: dict[Key, float] = {}
        for i, key in enumerate(self._keys):
            params = self._params[key]
            mu = params["mu"]
            sigma = params["sigma"]

            drift = (mu - 0.5 * sigma**2) * self._dt
            diffusion = sigma * math.sqrt(self._dt) * z_correlated[i]
            self._prices[key] *= math.exp(drift + diffusion)

            # Random shock: ~0.1% chance per tick per key
            if random.random() < self._event_prob:
                shock_magnitude = random.uniform(0.02, 0.05)
                shock_sign = random.choice([-1, 1])
                self._prices[key] *= 1 + shock_magnitude * shock_sign
                logger.debug(
                    "Random event on %s: %.1f%% %s",
                    key,
                    shock_magnitude * 100,
                    "up" if shock_sign > 0 else "down",
                )

            result[key] = self._prices[key]

        return result

    def add_key(self, key: Key) -> None:
        """Start simulating a key. Rebuilds the correlation matrix."""
        if key in self._prices:
            return
        self._add_key_internal(key)
        self._rebuild_cholesky()

    def remove_key(self, key: Key) -> None:
        """Stop simulating a key. Rebuilds the correlation matrix."""
        if key not in self._prices:
            return
        self._keys.remove(key)
        del self._prices[key]
        del self._params[key]
        self._rebuild_cholesky()

    def get_price(self, key: Key) -> float | None:
        return self._prices.get(key)

    @property
    def keys(self) -> list[Key]:
        return list(self._keys)

    # --- Internals ---

    def _add_key_internal(self, key: Key) -> None:
        """Add a key without rebuilding Cholesky (for batch initialization)."""
        if key in self._prices:
            return
        self._keys.append(key)
        self._prices[key] = SEED_PRICES.get(key.symbol, random.uniform(50.0, 300.0))
        self._params[key] = SYMBOL_PARAMS.get(key.symbol, dict(DEFAULT_PARAMS))

    def _rebuild_cholesky(self) -> None:
        """Rebuild the Cholesky decomposition of the correlation matrix."""
        n = len(self._keys)
        if n <= 1:
            self._cholesky = None
            return

        corr = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                rho = self._pairwise_correlation(self._keys[i].symbol, self._keys[j].symbol)
                corr[i, j] = rho
                corr[j, i] = rho

        self._cholesky = np.linalg.cholesky(corr)

    @staticmethod
    def _pairwise_correlation(s1: str, s2: str) -> float:
        """Correlation between two symbols based on their group.

          - Crypto with crypto:  0.7
          - Tech with tech:      0.6
          - Finance with finance: 0.5
          - Mavericks / cross-group / unknown: 0.3
        """
        if s1 in MAVERICKS or s2 in MAVERICKS:
            return MAVERICK_CORR

        for group, corr in (
            ("crypto", INTRA_CRYPTO_CORR),
            ("tech", INTRA_TECH_CORR),
            ("finance", INTRA_FINANCE_CORR),
        ):
            members = CORRELATION_GROUPS[group]
            if s1 in members and s2 in members:
                return corr

        return CROSS_GROUP_CORR


class SimulatorValueSource(ValueSource):
    """ValueSource backed by the GBM simulator.

    A background task steps every open key each `update_interval` seconds;
    read() returns the latest simulated price. Symbols outside SEED_PRICES are
    rejected at open() unless `allow_unknown` is set, which gives the demo a
    realistic "invalid symbol" path.
    """

    def __init__(
        self,
        update_interval: float = 0.5,
        settle_delay: float = 0.0,
        event_probability: float = 0.001,
        allow_unknown: bool = False,
    ) -> None:
        self._interval = update_interval
        self._settle_delay = settle_delay
        self._event_prob = event_probability
        self._allow_unknown = allow_unknown
        self._sim: GBMSimulator | None = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._sim is not None:
            return
        self._sim = GBMSimulator(
            keys=[],
            dt=self._interval / GBMSimulator.SECONDS_PER_YEAR,
            event_probability=self._event_prob,
        )
        self._task = asyncio.create_task(self._run_loop(), name="simulator-loop")
        logger.info("Simulator started (%.2fs steps)", self._interval)

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._sim = None
        logger.info("Simulator stopped")

    async def open(self, key: Key) -> OpenResult:
        if self._sim is None:
            raise RuntimeError("Simulator not started")
        if self._settle_delay:
            await asyncio.sleep(self._settle_delay)
        if self._sim is None:  # shut down while settling
            return OpenResult.invalid()
        if not self._allow_unknown and key.symbol not in SEED_PRICES:
            logger.info("Simulator: unknown symbol %s", key)
            return OpenResult.invalid()

        self._sim.add_key(key)
        logger.info("Simulator: added %s", key)
        return OpenResult.valid(format_price(self._sim.get_price(key)))

    async def read(self, key: Key) -> str | None:
        price = self._sim.get_price(key) if self._sim else None
        return format_price(price) if price is not None else None

    async def close(self, key: Key) -> None:
        if self._sim:
            self._sim.remove_key(key)
        logger.info("Simulator: removed %s", key)

    def get_keys(self) -> list[Key]:
        return self._sim.keys if self._sim else []

    async def _run_loop(self) -> None:
        """Core loop: step the simulation, sleep."""
        while True:
            try:
                if self._sim:
                    self._sim.step()
            except Exception:
                logger.exception("Simulator step failed")
            await asyncio.sleep(self._interval)
