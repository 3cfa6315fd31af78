from unittest.mock import AsyncMock

import pytest

from botdesk.services.metrics_broadcaster import MetricsBroadcaster, WebSocketConnectionManager

SNAPSHOT = {"system": {}, "process": {}, "api": {"totalRequests": 0}, "database": {"healthy": True}}


def make_socket(fail=False):
    websocket = AsyncMock()
    if fail:
        websocket.send_json.side_effect = RuntimeError("socket closed")
    return websocket


@pytest.fixture
def analytics():
    service = AsyncMock()
    service.system_health.return_value = SNAPSHOT
    return service


@pytest.fixture
def manager():
    return WebSocketConnectionManager()


class TestWebSocketConnectionManager:
    async def test_connect_accepts_and_tracks(self, manager):
        websocket = make_socket()

        subscriber = await manager.connect(websocket, client_id="dash-1")

        websocket.accept.assert_awaited_once()
        assert subscriber.client_id == "dash-1"
        assert manager.get_connection_count() == 1

    async def test_generated_client_id(self, manager):
        subscriber = await manager.connect(make_socket())
        assert len(subscriber.client_id) == 8

    async def test_disconnect_is_idempotent(self, manager):
        await manager.connect(make_socket(), client_id="dash-1")

        await manager.disconnect("dash-1")
        await manager.disconnect("dash-1")

        assert manager.get_connection_count() == 0

    async def test_send_to_unknown_client(self, manager):
        assert await manager.send_to_client("ghost", {"type": "metrics"}) is False


class TestMetricsBroadcaster:
    async def test_tick_without_clients_skips_snapshot(self, analytics, manager):
        broadcaster = MetricsBroadcaster(analytics, manager)

        assert await broadcaster.tick() == 0
        analytics.system_health.assert_not_awaited()

    async def test_one_snapshot_per_tick_for_all_clients(self, analytics, manager):
        first, second = make_socket(), make_socket()
        await manager.connect(first, client_id="a")
        await manager.connect(second, client_id="b")
        broadcaster = MetricsBroadcaster(analytics, manager)

        assert await broadcaster.tick() == 2

        analytics.system_health.assert_awaited_once()
        first.send_json.assert_awaited_once_with({"type": "metrics", "data": SNAPSHOT})
        second.send_json.assert_awaited_once_with({"type": "metrics", "data": SNAPSHOT})

    async def test_dead_client_is_dropped(self, analytics, manager):
        await manager.connect(make_socket(), client_id="alive")
        await manager.connect(make_socket(fail=True), client_id="dead")
        broadcaster = MetricsBroadcaster(analytics, manager)

        assert await broadcaster.tick() == 1
        assert manager.get_connection_count() == 1

    async def test_send_initial(self, analytics, manager):
        websocket = make_socket()
        await manager.connect(websocket, client_id="dash-1")
        broadcaster = MetricsBroadcaster(analytics, manager)

        assert await broadcaster.send_initial("dash-1") is True
        websocket.send_json.assert_awaited_once_with({"type": "metrics", "data": SNAPSHOT})

    async def test_start_and_stop(self, analytics, manager):
        broadcaster = MetricsBroadcaster(analytics, manager, interval_seconds=0.01)

        broadcaster.start()
        await broadcaster.stop()
        await broadcaster.stop()

        assert broadcaster._task is None
