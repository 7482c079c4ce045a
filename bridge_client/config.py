# bridge_client/config.py
from dotenv import load_dotenv, find_dotenv
from urllib.parse import urlsplit
import os
import logging

from bridge_client.errors import ConfigurationError

# Load nearest .env from project tree, don't override existing process env
load_dotenv(find_dotenv(usecwd=True), override=False)

logger = logging.getLogger(__name__)

class Settings:
    """Unified configuration for the bridge sync client."""

    # Page origin the client is served from (scheme://host[:port])
    BRIDGE_ORIGIN = (os.getenv("BRIDGE_ORIGIN") or "http://localhost:5000").strip().rstrip("/")
    BRIDGE_WS_PATH = (os.getenv("BRIDGE_WS_PATH") or "/ws").strip()
    BRIDGE_HEALTH_PATH = (os.getenv("BRIDGE_HEALTH_PATH") or "/api/health").strip()

    # Connection lifecycle
    BRIDGE_RECONNECT_DELAY_MS = int(os.getenv("BRIDGE_RECONNECT_DELAY_MS", "3000"))  # Fixed, no backoff
    BRIDGE_KEEPALIVE_INTERVAL_MS = int(os.getenv("BRIDGE_KEEPALIVE_INTERVAL_MS", "25000"))

    # Health probe (keeps the backend process from idling down)
    BRIDGE_HEALTH_INTERVAL_MS = int(os.getenv("BRIDGE_HEALTH_INTERVAL_MS", str(4 * 60 * 1000)))
    BRIDGE_HEALTH_TIMEOUT_MS = int(os.getenv("BRIDGE_HEALTH_TIMEOUT_MS", "10000"))

    # Optimistic command window
    BRIDGE_PENDING_TTL_MS = int(os.getenv("BRIDGE_PENDING_TTL_MS", "3000"))

    # Cache bounds for list topics
    BRIDGE_LIST_LIMIT = int(os.getenv("BRIDGE_LIST_LIMIT", "50"))

    # Logging
    BRIDGE_LOG_LEVEL = (os.getenv("BRIDGE_LOG_LEVEL") or "INFO").strip().upper()
    BRIDGE_LOG_FILE = (os.getenv("BRIDGE_LOG_FILE") or "").strip()

    def __init__(self):
        if self.BRIDGE_RECONNECT_DELAY_MS <= 0:
            logger.warning("BRIDGE_RECONNECT_DELAY_MS must be positive, falling back to 3000")
            self.BRIDGE_RECONNECT_DELAY_MS = 3000

settings = Settings()

def _split_origin(origin: str):
    parts = urlsplit(origin.strip())
    if not parts.scheme or not parts.netloc:
        raise ConfigurationError(
            f"Invalid origin: {origin!r}",
            details={"origin": origin}
        )
    return parts

def ws_url_for(origin: str, path: str = "/ws") -> str:
    """Get WebSocket URL for the given page origin (secure page -> wss)."""
    parts = _split_origin(origin)
    scheme = "wss" if parts.scheme.lower() in ("https", "wss") else "ws"
    return f"{scheme}://{parts.netloc}{path}"

def health_url_for(origin: str, path: str = "/api/health") -> str:
    """Get the liveness endpoint URL for the given page origin."""
    parts = _split_origin(origin)
    return f"{parts.scheme}://{parts.netloc}{path}"
