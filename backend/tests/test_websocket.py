"""
WebSocket tests.

Tests cover:
- Init message and ping/pong on the /ws endpoint
- Broadcast to connected clients and cleanup of dead ones
- Event bus topics forwarded as typed messages
"""
import pytest
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from event_bus import EventBus, STATUS_CHANGED, TRADE_EXECUTED


@pytest.fixture
def mock_clients():
    """Two connected mock WebSocket clients."""
    from server import ws_clients
    ws_clients.clear()
    clients = [AsyncMock(), AsyncMock()]
    for ws in clients:
        ws_clients.add(ws)
    yield clients
    ws_clients.clear()


class TestBroadcast:
    """Tests for the broadcaster."""

    @pytest.mark.asyncio
    async def test_broadcast_to_all_clients(self, mock_clients):
        from server import broadcast

        await broadcast({"type": "status_changed", "data": {"is_running": True}})

        for ws in mock_clients:
            sent = json.loads(ws.send_text.call_args.args[0])
            assert sent == {"type": "status_changed", "data": {"is_running": True}}

    @pytest.mark.asyncio
    async def test_broadcast_drops_disconnected_client(self, mock_clients):
        """Test a client whose send fails is removed from the set."""
        from server import broadcast, ws_clients
        dead, alive = mock_clients
        dead.send_text.side_effect = RuntimeError("closed")

        await broadcast({"type": "ping"})

        assert dead not in ws_clients
        assert alive in ws_clients

    @pytest.mark.asyncio
    async def test_broadcast_no_clients(self):
        from server import broadcast, ws_clients
        ws_clients.clear()
        await broadcast({"type": "noop"})

    @pytest.mark.asyncio
    async def test_event_bus_forwarding(self, mock_clients):
        """Test bus payloads reach clients tagged with their topic, objects via to_dict."""
        from server import make_broadcaster
        bus = EventBus()
        bus.subscribe(STATUS_CHANGED, make_broadcaster(STATUS_CHANGED))
        bus.subscribe(TRADE_EXECUTED, make_broadcaster(TRADE_EXECUTED))

        status = MagicMock()
        status.to_dict.return_value = {"is_running": False}
        bus.publish(STATUS_CHANGED, status)
        bus.publish(TRADE_EXECUTED, {"reason": "test"})
        await asyncio.sleep(0.01)

        messages = [json.loads(c.args[0]) for c in mock_clients[0].send_text.call_args_list]
        assert {"type": "status_changed", "data": {"is_running": False}} in messages
        assert {"type": "trade_executed", "data": {"reason": "test"}} in messages


class TestWebSocketEndpoint:
    """Tests for /ws over the test client."""

    def test_init_and_ping(self):
        from fastapi.testclient import TestClient
        from portfolio import PortfolioManager
        from routes import deps
        from server import app

        deps.set_state("portfolio", PortfolioManager(500.0))
        try:
            client = TestClient(app)
            with client.websocket_connect("/ws") as ws:
                init = ws.receive_json()
                assert init["type"] == "init"
                assert init["summary"]["cash"] == 500.0
                assert init["status"] is None

                ws.send_text(json.dumps({"type": "ping"}))
                assert ws.receive_json() == {"type": "pong"}
        finally:
            deps.clear_state()
