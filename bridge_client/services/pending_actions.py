"""
Optimistic pending-action tracking for user commands.
At most one in-flight action per key; each is cleared unconditionally when its
window elapses, whether or not the server acted on it.
"""

import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional

from bridge_client.errors import AlreadyPendingError

logger = logging.getLogger("pending_actions")

PENDING_TTL = 3.0  # seconds

@dataclass(frozen=True)
class PendingAction:
    """Record of an in-flight command."""
    key: str
    created_at: float
    expires_at: float

ChangeListener = Callable[[FrozenSet[str]], None]

class PendingActionTracker:
    """Tracks in-flight commands by key with a fixed optimism window."""

    def __init__(
        self,
        ttl: float = PENDING_TTL,
        clock: Callable[[], float] = time.time,
        on_change: Optional[ChangeListener] = None,
    ):
        self.ttl = ttl
        self._clock = clock
        self.on_change = on_change
        self.actions: Dict[str, PendingAction] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

        self.expired_total = 0
        self.rejected_total = 0

    def is_pending(self, key: str) -> bool:
        """Check if a command for key is in flight."""
        return key in self.actions

    def get(self, key: str) -> Optional[PendingAction]:
        return self.actions.get(key)

    def pending_keys(self) -> FrozenSet[str]:
        return frozenset(self.actions)

    def add(self, key: str) -> PendingAction:
        """
        Record a new in-flight command and schedule its expiry.

        Raises:
            AlreadyPendingError: If key already has a pending action
        """
        if key in self.actions:
            self.rejected_total += 1
            logger.warning(f"[pending] Duplicate command for {key} while in flight")
            raise AlreadyPendingError(details={"key": key})

        now = self._clock()
        action = PendingAction(key=key, created_at=now, expires_at=now + self.ttl)
        self.actions[key] = action

        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.ttl, self._expire, key, action)

        logger.debug(f"[pending] Recorded {key} (expires in {self.ttl}s)")
        self._notify()
        return action

    def resolve(self, key: str) -> bool:
        """Remove a pending action early (acknowledgment or rollback)."""
        action = self.actions.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        if action is None:
            return False

        logger.debug(f"[pending] Resolved {key}")
        self._notify()
        return True

    def clear(self) -> None:
        """Drop every pending action and cancel its timer. Idempotent."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        if self.actions:
            self.actions.clear()
            self._notify()

    def _expire(self, key: str, action: PendingAction) -> None:
        # Ignore a stale timer for a key that was resolved and re-added
        if self.actions.get(key) is not action:
            return

        del self.actions[key]
        self._timers.pop(key, None)
        self.expired_total += 1
        logger.debug(f"[pending] {key} expired after {self.ttl}s")
        self._notify()

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self.pending_keys())
        except Exception as e:
            logger.error(f"[pending] Change listener failed: {e}")

    def get_stats(self) -> Dict:
        """Get tracker statistics."""
        return {
            "pending": sorted(self.actions),
            "ttl_s": self.ttl,
            "expired_total": self.expired_total,
            "rejected_total": self.rejected_total,
        }
