"""
Topic cache with change notification.
Holds the latest server-provided value per topic; the sync core is the only
writer, UI code reads snapshots and subscribes to changes.
"""

import copy
import time
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("cache_store")

# Fixed topics exposed to the UI layer
STATS = "stats"
SIGNALS = "signals"
TRADES = "trades"
ACCOUNT = "account"
POSITIONS = "positions"

TOPICS = (STATS, SIGNALS, TRADES, ACCOUNT, POSITIONS)

CacheListener = Callable[[str, Any], None]

class CacheStore:
    """Key-value store keyed by topic. Single-threaded, no locking."""

    def __init__(self):
        self._cache: Dict[str, Any] = {}
        self._listeners: List[CacheListener] = []
        self._last_update_ts = 0.0
        self.writes = 0

    def _check_topic(self, topic: str) -> None:
        if topic not in TOPICS:
            raise KeyError(f"Unknown cache topic: {topic}")

    def get(self, topic: str, default: Any = None) -> Any:
        """Get a copy of the latest value for a topic."""
        self._check_topic(topic)
        if topic not in self._cache:
            return default
        return copy.deepcopy(self._cache[topic])

    def set(self, topic: str, value: Any) -> None:
        """Replace the value of a topic wholesale."""
        self._check_topic(topic)
        self._cache[topic] = value
        self._last_update_ts = time.time()
        self.writes += 1
        logger.debug(f"[cache] Updated topic {topic}")
        self._notify(topic, value)

    def update(self, topic: str, updater: Callable[[Any], Any]) -> Any:
        """
        Derive the new value of a topic from its current value.

        Args:
            topic: Cache topic
            updater: Called with the current value (None when absent); its
                return value becomes the new value

        Returns:
            The new value
        """
        self._check_topic(topic)
        value = updater(self._cache.get(topic))
        self.set(topic, value)
        return value

    def snapshot(self) -> Dict[str, Any]:
        """Get a copy of every populated topic."""
        return copy.deepcopy(self._cache)

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, topic: str, value: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(topic, copy.deepcopy(value))
            except Exception as e:
                logger.error(f"[cache] Listener failed for {topic}: {e}")

    def get_last_update_ts(self) -> float:
        """Get timestamp of last write."""
        return self._last_update_ts

    def is_connected(self) -> Optional[bool]:
        """Bridge connection flag as last reported in stats."""
        stats = self._cache.get(STATS)
        if not isinstance(stats, dict):
            return None
        return stats.get("isConnected")
