"""
Sync session - one explicitly constructed client session.
Wires cache, router, connection, health probe and command dispatch together
and owns their start/stop lifecycle.
"""

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from bridge_client.config import Settings, health_url_for, settings as default_settings, ws_url_for
from bridge_client.services.action_dispatcher import ActionDispatcher, Notice, Notifier
from bridge_client.services.cache_store import CacheStore
from bridge_client.services.connection_manager import ConnectionManager
from bridge_client.services.health_probe import HealthProbe
from bridge_client.services.message_router import MessageRouter
from bridge_client.services.pending_actions import ChangeListener, PendingActionTracker

logger = logging.getLogger("session")

class SyncSession:
    """Real-time synchronization client for one bridge origin."""

    def __init__(
        self,
        origin: Optional[str] = None,
        config: Optional[Settings] = None,
        cache: Optional[CacheStore] = None,
        notifier: Optional[Notifier] = None,
        on_pending_change: Optional[ChangeListener] = None,
        connector: Optional[Callable[..., Any]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = config or default_settings
        self.origin = (origin or config.BRIDGE_ORIGIN).rstrip("/")

        self.cache = cache or CacheStore()
        self.router = MessageRouter(self.cache, list_limit=config.BRIDGE_LIST_LIMIT)
        self.connection = ConnectionManager(
            ws_url_for(self.origin, config.BRIDGE_WS_PATH),
            on_message=self.router.route,
            reconnect_delay=config.BRIDGE_RECONNECT_DELAY_MS / 1000.0,
            keepalive_interval=config.BRIDGE_KEEPALIVE_INTERVAL_MS / 1000.0,
            connector=connector,
        )
        self.health_probe = HealthProbe(
            health_url_for(self.origin, config.BRIDGE_HEALTH_PATH),
            interval=config.BRIDGE_HEALTH_INTERVAL_MS / 1000.0,
            timeout=config.BRIDGE_HEALTH_TIMEOUT_MS / 1000.0,
            transport=http_transport,
        )
        self.tracker = PendingActionTracker(
            ttl=config.BRIDGE_PENDING_TTL_MS / 1000.0,
            on_change=on_pending_change,
        )
        self.dispatcher = ActionDispatcher(self.connection, self.tracker, notifier=notifier)
        self.running = False

    async def start(self) -> None:
        """Open the connection and start the health probe."""
        if self.running:
            logger.warning("[session] Session already running")
            return

        self.running = True
        self.connection.connect()
        await self.health_probe.start()
        logger.info(f"[session] Started for {self.origin}")

    async def stop(self) -> None:
        """Tear everything down. Safe to call more than once."""
        was_running = self.running
        self.running = False

        await self.connection.stop()
        await self.health_probe.stop()
        self.tracker.clear()

        if was_running:
            logger.info("[session] Stopped")

    async def close_position(self, ticket: str) -> Notice:
        """Request a position close; the outcome is returned as a notice."""
        return await self.dispatcher.close_position(ticket)

    async def __aenter__(self) -> "SyncSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def get_health_metrics(self) -> Dict[str, Any]:
        """Aggregate health of every component."""
        return {
            "running": self.running,
            "connection": self.connection.get_health_metrics(),
            "router": self.router.get_stats(),
            "health_probe": self.health_probe.get_health_info(),
            "pending": self.tracker.get_stats(),
            "commands_sent": self.dispatcher.commands_sent,
        }
