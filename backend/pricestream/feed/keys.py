"""Canonical subscription keys."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SCOPE = "BINANCE"
SEPARATOR = ":"


class InvalidKeyError(ValueError):
    """Raised when a scope/symbol pair cannot be turned into a Key."""


@dataclass(frozen=True, slots=True, order=True)
class Key:
    """Normalized (scope, symbol) identity, e.g. BINANCE:BTCUSD.

    Always build through normalize_key() so that every map in the engine sees
    the same canonical form.
    """

    scope: str
    symbol: str

    def __str__(self) -> str:
        return f"{self.scope}{SEPARATOR}{self.symbol}"


def _clean(raw: str | None, what: str) -> str:
    value = (raw or "").strip().upper()
    if not value:
        raise InvalidKeyError(f"{what} must not be empty")
    if SEPARATOR in value:
        raise InvalidKeyError(f"{what} must not contain '{SEPARATOR}': {value!r}")
    return value


def normalize_key(symbol: str | None, scope: str | None = None, default_scope: str = DEFAULT_SCOPE) -> Key:
    """Uppercase and trim a symbol and its scope. Missing scope → default_scope."""
    if scope is None or not scope.strip():
        scope = default_scope
    return Key(scope=_clean(scope, "scope"), symbol=_clean(symbol, "symbol"))
