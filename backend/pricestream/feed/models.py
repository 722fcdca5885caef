"""Data models for the price feed."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from .keys import Key


class SessionState(str, Enum):
    """Lifecycle of a key's polling session."""

    ABSENT = "absent"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


@dataclass(frozen=True, slots=True)
class OpenResult:
    """What a ValueSource reports when asked to open a session."""

    ok: bool
    initial_value: str | None = None

    @classmethod
    def valid(cls, initial_value: str) -> OpenResult:
        return cls(ok=True, initial_value=initial_value)

    @classmethod
    def invalid(cls) -> OpenResult:
        return cls(ok=False)


@dataclass(frozen=True, slots=True)
class SubscribeResult:
    """Outcome of SubscriptionEngine.subscribe()."""

    ok: bool
    key: Key
    error: str | None = None

    @classmethod
    def success(cls, key: Key) -> SubscribeResult:
        return cls(ok=True, key=key)

    @classmethod
    def failure(cls, key: Key, error: str) -> SubscribeResult:
        return cls(ok=False, key=key, error=error)


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    """Immutable snapshot of a key's value at a point in time.

    Values are kept as the decimal strings the source produced. Direction is
    derived with Decimal only for presentation, never for change detection.
    """

    key: Key
    value: str
    previous_value: str | None = None
    timestamp: float = field(default_factory=time.time)  # Unix seconds

    @property
    def direction(self) -> str:
        """'up', 'down', or 'flat'."""
        if self.previous_value is None:
            return "flat"
        current, previous = Decimal(self.value), Decimal(self.previous_value)
        if current > previous:
            return "up"
        elif current < previous:
            return "down"
        return "flat"

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "ticker": self.key.symbol,
            "exchange": self.key.scope,
            "price": self.value,
            "previous_price": self.previous_value,
            "timestamp": int(self.timestamp * 1000),  # browser clients expect ms
            "direction": self.direction,
        }
