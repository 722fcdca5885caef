"""Tests for ListenerRegistry."""

from pricestream.feed.keys import Key
from pricestream.feed.registry import ListenerRegistry

BTC = Key("BINANCE", "BTCUSD")
ETH = Key("BINANCE", "ETHUSD")


class TestListenerRegistry:
    """Unit tests for the per-key listener sets."""

    def test_register_is_idempotent(self, make_listener):
        """Test that the same listener is only counted once."""
        registry = ListenerRegistry()
        listener = make_listener()
        assert registry.register(BTC, listener) is True
        assert registry.register(BTC, listener) is False
        assert registry.listener_count(BTC) == 1

    def test_identity_not_equality(self, make_listener):
        """Test that two distinct listeners are both kept."""
        registry = ListenerRegistry()
        registry.register(BTC, make_listener("same"))
        registry.register(BTC, make_listener("same"))
        assert registry.listener_count(BTC) == 2

    def test_unregister_last_drops_key(self, make_listener):
        """Test that emptying a key's set removes the key."""
        registry = ListenerRegistry()
        listener = make_listener()
        registry.register(BTC, listener)
        assert registry.unregister(BTC, listener) is True
        assert BTC not in registry
        assert len(registry) == 0

    def test_unregister_unknown(self, make_listener):
        """Test that unregistering an absent listener returns False."""
        registry = ListenerRegistry()
        assert registry.unregister(BTC, make_listener()) is False
        registry.register(BTC, make_listener())
        assert registry.unregister(BTC, make_listener()) is False
        assert registry.listener_count(BTC) == 1

    def test_listeners_snapshot(self, make_listener):
        """Test that listeners() is a snapshot, unaffected by later changes."""
        registry = ListenerRegistry()
        first, second = make_listener(), make_listener()
        registry.register(BTC, first)
        snapshot = registry.listeners(BTC)
        registry.register(BTC, second)
        assert snapshot == (first,)

    def test_keys_for(self, make_listener):
        """Test finding every key a listener holds."""
        registry = ListenerRegistry()
        listener, other = make_listener(), make_listener()
        registry.register(BTC, listener)
        registry.register(ETH, listener)
        registry.register(ETH, other)
        assert sorted(registry.keys_for(listener)) == [BTC, ETH]
        assert registry.keys_for(other) == [ETH]

    def test_discard(self, make_listener):
        """Test dropping a key's whole set."""
        registry = ListenerRegistry()
        registry.register(BTC, make_listener())
        registry.discard(BTC)
        registry.discard(ETH)  # Should not raise
        assert registry.keys() == []
