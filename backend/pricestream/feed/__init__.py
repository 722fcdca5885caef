"""Live price subscription and fan-out for pricestream.

Public API:
    Key, normalize_key   - Canonical SCOPE:SYMBOL identity
    SubscriptionEngine   - Opens, polls, fans out and closes per-key sessions
    ValueSource          - Abstract interface for price providers
    Listener             - Abstract interface for update consumers
    CallbackListener     - Listener adapter for plain functions
    ValueCache           - Thread-safe store of the last delivered values
    StreamConfig         - Environment-driven timing configuration
    create_value_source  - Factory that selects the simulator, Massive or TradingView
    create_stream_router - FastAPI router factory for the SSE endpoints
"""

from .cache import ValueCache
from .config import StreamConfig
from .engine import SubscriptionEngine
from .factory import create_value_source
from .interface import CallbackListener, Listener, ValueSource
from .keys import DEFAULT_SCOPE, InvalidKeyError, Key, normalize_key
from .models import OpenResult, PriceUpdate, SessionState, SubscribeResult
from .stream import QueueListener, StreamHub, create_stream_router

__all__ = [
    "DEFAULT_SCOPE",
    "CallbackListener",
    "InvalidKeyError",
    "Key",
    "Listener",
    "OpenResult",
    "PriceUpdate",
    "QueueListener",
    "SessionState",
    "StreamConfig",
    "StreamHub",
    "SubscribeResult",
    "SubscriptionEngine",
    "ValueCache",
    "ValueSource",
    "create_stream_router",
    "create_value_source",
    "normalize_key",
]
