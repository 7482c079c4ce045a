"""
Cache Store Tests
Topic reads, writes and change notification.
"""

import pytest

from bridge_client.services.cache_store import CacheStore, TOPICS


class TestCacheStore:
    """Test CacheStore read/write semantics."""

    def test_topics_are_fixed(self):
        assert TOPICS == ("stats", "signals", "trades", "account", "positions")

        cache = CacheStore()
        with pytest.raises(KeyError):
            cache.set("mt5-history", [])
        with pytest.raises(KeyError):
            cache.get("mt5-history")

    def test_get_returns_copy(self):
        cache = CacheStore()
        cache.set("stats", {"pendingSignals": 1})

        stats = cache.get("stats")
        stats["pendingSignals"] = 99

        assert cache.get("stats") == {"pendingSignals": 1}

    def test_update_receives_none_when_absent(self):
        cache = CacheStore()
        seen = []

        def updater(old):
            seen.append(old)
            return ["x"]

        assert cache.update("trades", updater) == ["x"]
        assert seen == [None]
        assert cache.get("trades") == ["x"]

    def test_latest_value_persists(self):
        cache = CacheStore()
        cache.set("account", {"balance": 1})
        cache.set("account", {"balance": 2})

        assert cache.get("account") == {"balance": 2}
        assert cache.writes == 2
        assert cache.get_last_update_ts() > 0

    def test_subscribe_and_unsubscribe(self):
        cache = CacheStore()
        changes = []
        unsubscribe = cache.subscribe(lambda topic, value: changes.append((topic, value)))

        cache.set("stats", {"isConnected": True})
        unsubscribe()
        cache.set("stats", {"isConnected": False})

        assert changes == [("stats", {"isConnected": True})]

    def test_failing_listener_does_not_block_others(self):
        cache = CacheStore()
        changes = []

        def broken(topic, value):
            raise RuntimeError("render failed")

        cache.subscribe(broken)
        cache.subscribe(lambda topic, value: changes.append(topic))

        cache.set("positions", [])

        assert changes == ["positions"]
        assert cache.get("positions") == []

    def test_listener_failure_logged_under_component_logger(self, caplog):
        cache = CacheStore()

        def broken(topic, value):
            raise RuntimeError("render failed")

        cache.subscribe(broken)
        with caplog.at_level("ERROR", logger="cache_store"):
            cache.set("stats", {})

        assert [r.name for r in caplog.records] == ["cache_store"]
        assert caplog.records[0].getMessage().startswith("[cache] Listener failed for stats")

    def test_is_connected(self):
        cache = CacheStore()
        assert cache.is_connected() is None

        cache.set("stats", {"isConnected": False})
        assert cache.is_connected() is False
