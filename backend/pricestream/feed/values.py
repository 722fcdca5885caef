"""Shape validation for raw price readings."""

from __future__ import annotations

import re

_DECIMAL_SHAPE = re.compile(r"^\d+(\.\d+)?$")


def parse_price(raw: object) -> str | None:
    """Return a canonical price string, or None when the reading is unusable.

    Strips whitespace and ',' grouping separators and checks for a plain
    decimal shape. The number itself is never interpreted, so "42000" and
    "42000.0" stay different values.
    """
    if raw is None:
        return None
    text = str(raw).strip().replace(",", "")
    if not text or not _DECIMAL_SHAPE.match(text):
        return None
    return text


def format_price(price: float) -> str:
    """Render a numeric price as a plain decimal string (never exponent form)."""
    places = 2 if abs(price) >= 1 else 6
    return f"{price:.{places}f}"
