"""
Sync Session Tests
End-to-end wiring: socket frames reach the cache, commands reach the socket,
teardown releases everything.
"""

import asyncio
import json
import httpx
import pytest

from bridge_client.services.connection_state import ConnectionState
from bridge_client.services.session import SyncSession


@pytest.fixture
def health_requests():
    return []


@pytest.fixture
def http_transport(health_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        health_requests.append(request)
        return httpx.Response(200, json={"status": "ok"})

    return httpx.MockTransport(handler)


@pytest.fixture
def notices():
    return []


@pytest.fixture
def session(fast_settings, fake_connector, http_transport, notices):
    return SyncSession(
        origin="https://bridge.example.com",
        config=fast_settings,
        connector=fake_connector,
        http_transport=http_transport,
        notifier=notices.append,
    )


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.usefixtures("async_fixture")
class TestSyncSession:
    """Test SyncSession end to end against fakes."""

    async def test_endpoints_derived_from_origin(self, session, fake_connector):
        await session.start()
        await session.connection.wait_open(timeout=1.0)

        assert fake_connector.calls[0][0] == "wss://bridge.example.com/ws"
        assert session.health_probe.url == "https://bridge.example.com/api/health"
        await session.stop()

    async def test_frames_reach_cache(self, session, fake_connector, wait_until):
        changes = []
        session.cache.subscribe(lambda topic, value: changes.append(topic))
        await session.start()
        await session.connection.wait_open(timeout=1.0)
        ws = fake_connector.ws

        ws.feed(json.dumps({"type": "stats", "data": {
            "pendingSignals": 2, "executedTrades": 10, "successRate": 83.3, "isConnected": True,
        }}))
        ws.feed("this is not json")
        ws.feed(json.dumps({"type": "connection_status", "data": {"isConnected": False}}))
        ws.feed(json.dumps({"type": "position_list", "data": [{"ticket": "1001", "symbol": "EURUSD"}]}))

        assert await wait_until(lambda: session.router.frames_processed == 3)
        assert session.cache.get("stats") == {
            "pendingSignals": 2, "executedTrades": 10, "successRate": 83.3, "isConnected": False,
        }
        assert session.cache.get("positions") == [{"ticket": "1001", "symbol": "EURUSD"}]
        assert session.router.decode_errors == 1
        assert session.connection.is_open
        assert changes == ["stats", "stats", "positions"]
        await session.stop()

    async def test_close_position_round_trip(self, session, fake_connector, notices, fast_settings):
        await session.start()
        await session.connection.wait_open(timeout=1.0)

        first = await session.close_position("1001")
        second = await session.close_position("1001")

        assert first.variant == "default"
        assert second.variant == "warning"
        sent = [json.loads(m) for m in fake_connector.ws.sent]
        assert [m for m in sent if m["type"] == "close_position"] == [{"type": "close_position", "ticket": "1001"}]
        assert notices == [first, second]

        await asyncio.sleep(fast_settings.BRIDGE_PENDING_TTL_MS / 1000.0 * 1.5)
        assert not session.tracker.is_pending("1001")
        await session.stop()

    async def test_close_before_connect(self, session):
        notice = await session.close_position("1001")

        assert notice.variant == "error"
        assert session.dispatcher.commands_sent == 0

    async def test_health_probe_independent_of_socket(self, session, fake_connector, health_requests, wait_until):
        fake_connector.handshake_failures = [OSError("refused") for _ in range(50)]
        await session.start()

        assert await wait_until(lambda: len(health_requests) >= 2)
        assert session.connection.state in (ConnectionState.CONNECTING, ConnectionState.CLOSED)
        await session.stop()

    async def test_stop_is_idempotent(self, session, fake_connector, health_requests):
        await session.stop()

        await session.start()
        await session.connection.wait_open(timeout=1.0)
        await session.close_position("1001")

        await session.stop()
        await session.stop()

        assert session.connection.state is ConnectionState.IDLE
        assert fake_connector.ws.closed
        assert session.tracker.pending_keys() == frozenset()
        assert session.health_probe.client is None

        probes = len(health_requests)
        await asyncio.sleep(0.15)
        assert len(health_requests) == probes
        assert len(fake_connector.calls) == 1

    async def test_async_context_manager(self, session):
        async with session as running:
            assert running.running
            assert await running.connection.wait_open(timeout=1.0)

        assert not session.running
        assert session.connection.state is ConnectionState.IDLE


    async def test_health_metrics(self, session):
        metrics = session.get_health_metrics()

        assert metrics["running"] is False
        assert metrics["connection"]["state"] == "idle"
        assert metrics["pending"]["pending"] == []
        assert metrics["commands_sent"] == 0
