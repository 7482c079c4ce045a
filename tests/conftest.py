"""
Pytest Configuration
Provides a fake WebSocket connector, deterministic time, fast settings and
proper test teardown.
"""

import asyncio
import os
import time
import pytest
from typing import Any, Callable, List, Optional, Tuple

from bridge_client.config import Settings

_SERVER_CLOSE = object()


class FrozenClock:
    """Stand-in for time.time that only moves when told to."""

    def __init__(self, now: float):
        self.now = now
        self.frozen = True

    def time(self) -> float:
        return self.now if self.frozen else time.time()

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False
        self.send_error: Optional[Exception] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    async def close(self):
        self.closed = True

    # Server side controls
    def feed(self, message: str) -> None:
        self._inbox.put_nowait(message)

    def server_close(self) -> None:
        self._inbox.put_nowait(_SERVER_CLOSE)

    def fail(self, error: Exception) -> None:
        self._inbox.put_nowait(error)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _SERVER_CLOSE:
            self.closed = True
            raise StopAsyncIteration
        if isinstance(item, Exception):
            self.closed = True
            raise item
        return item


class _FakeConnect:
    def __init__(self, connector: "FakeConnector"):
        self.connector = connector
        self.ws: Optional[FakeWebSocket] = None

    async def __aenter__(self) -> FakeWebSocket:
        if self.connector.handshake_failures:
            raise self.connector.handshake_failures.pop(0)
        self.ws = FakeWebSocket()
        self.connector.sockets.append(self.ws)
        return self.ws

    async def __aexit__(self, exc_type, exc, tb):
        if self.ws is not None:
            self.ws.closed = True
        return False


class FakeConnector:
    """Replaces websockets.connect; records every connection attempt."""

    def __init__(self):
        self.calls: List[Tuple[str, dict, float]] = []
        self.sockets: List[FakeWebSocket] = []
        self.handshake_failures: List[Exception] = []

    def __call__(self, url: str, **kwargs: Any) -> _FakeConnect:
        self.calls.append((url, kwargs, asyncio.get_running_loop().time()))
        return _FakeConnect(self)

    @property
    def ws(self) -> FakeWebSocket:
        """Most recent socket."""
        return self.sockets[-1]


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate on the event loop until it holds or time runs out."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0, interval: float = 0.005) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if predicate():
                return True
            await asyncio.sleep(interval)
        return predicate()

    return _wait_until


@pytest.fixture
def deterministic_time():
    """Provide deterministic time for tests."""
    clock = FrozenClock(1_700_000_000.0)

    yield clock

    clock.frozen = False


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with production delays shrunk to test scale."""
    config = Settings()
    config.BRIDGE_ORIGIN = "http://localhost:5000"
    config.BRIDGE_RECONNECT_DELAY_MS = 100
    config.BRIDGE_KEEPALIVE_INTERVAL_MS = 50
    config.BRIDGE_HEALTH_INTERVAL_MS = 50
    config.BRIDGE_HEALTH_TIMEOUT_MS = 1000
    config.BRIDGE_PENDING_TTL_MS = 100
    config.BRIDGE_LIST_LIMIT = 50
    return config


@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["BRIDGE_LOG_LEVEL"] = "DEBUG"

    yield

    os.environ.pop("BRIDGE_LOG_LEVEL", None)


@pytest.fixture
async def async_fixture():
    """Cancel any tasks a test left behind."""
    yield

    tasks = [task for task in asyncio.all_tasks() if not task.done() and task is not asyncio.current_task()]
    if tasks:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


# Pytest configuration
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "deterministic: marks tests as deterministic")


def pytest_collection_modifyitems(config, items):
    """Mark deterministic tests by name."""
    for item in items:
        if "deterministic" in item.name:
            item.add_marker(pytest.mark.deterministic)
