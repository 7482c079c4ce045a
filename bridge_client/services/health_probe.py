"""
Backend liveness probe.
Periodically hits the health endpoint so the hosting platform does not idle
the backend down. Runs independently of the socket; failures are only logged.
"""

import asyncio
import logging
import httpx
from typing import Any, Dict, Optional
from datetime import datetime, timezone

logger = logging.getLogger("health_probe")

PROBE_INTERVAL = 4 * 60.0  # seconds

class HealthProbe:
    """Periodic unauthenticated GET against the liveness endpoint."""

    def __init__(
        self,
        url: str,
        interval: float = PROBE_INTERVAL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self._transport = transport
        self.running = False
        self.client: Optional[httpx.AsyncClient] = None
        self._task: Optional[asyncio.Task] = None

        self.probes_ok = 0
        self.probes_failed = 0
        self.last_ok: Optional[datetime] = None
        self.last_error: Optional[str] = None

    async def start(self) -> None:
        """Start the probe loop."""
        if self.running:
            return

        self.running = True
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        self._task = asyncio.create_task(self._probe_loop(), name="bridge-health-probe")
        logger.info(f"[health_probe] Started, probing {self.url} every {self.interval}s")

    async def stop(self) -> None:
        """Stop the probe loop and close the HTTP client. Idempotent."""
        self.running = False

        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("[health_probe] Stopped")

    async def _probe_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.interval)
            await self.probe()

    async def probe(self) -> bool:
        """Issue one probe. Returns True when the backend answered with success."""
        if self.client is None:
            return False

        try:
            response = await self.client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.probes_failed += 1
            self.last_error = str(e) or type(e).__name__
            logger.error(f"[health_probe] Backend health check failed: {self.last_error}")
            return False

        self.probes_ok += 1
        self.last_ok = datetime.now(timezone.utc)
        logger.info("[health_probe] Backend health check: OK")
        return True

    def get_health_info(self) -> Dict[str, Any]:
        """Get probe health information."""
        return {
            "url": self.url,
            "running": self.running,
            "interval_s": self.interval,
            "probes_ok": self.probes_ok,
            "probes_failed": self.probes_failed,
            "last_ok": self.last_ok.isoformat() if self.last_ok else None,
            "last_error": self.last_error,
        }
