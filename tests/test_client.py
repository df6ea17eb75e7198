from __future__ import annotations

import json

import httpx

from dashboard.api.client import BackendClient
from dashboard.models import ChartPayload, HistoryPage
from dashboard.session import MemorySession

from .conftest import FakeBackend, chart_body


async def test_bearer_header_and_dropped_params(client, backend):
    backend.routes["/api/trading/history/returns-chart"] = {"data": []}
    resp = await client.get_returns_chart(mode="simulation")
    assert resp.ok
    req = backend.requests[-1]
    assert req.headers["Authorization"] == "Bearer tok-1"
    assert req.url.params.get("mode") == "simulation"
    assert "strategy" not in req.url.params


async def test_no_token_no_header(backend):
    client = BackendClient("http://backend.test", MemorySession(), transport=httpx.MockTransport(backend))
    backend.routes["/api/system/status"] = {"is_running": False}
    await client.get_bot_status()
    assert "Authorization" not in backend.requests[-1].headers
    await client.aclose()


async def test_unauthorized_clears_session_and_notifies(backend, session):
    expired = []
    client = BackendClient(
        "http://backend.test",
        session,
        on_session_expired=lambda: expired.append(True),
        transport=httpx.MockTransport(backend),
    )
    backend.routes["/api/trading/portfolio"] = (401, {"detail": "Could not validate credentials"})
    resp = await client.get_portfolio()
    assert resp.error == "Could not validate credentials"
    assert resp.status == 401
    assert await session.get_token() is None
    assert expired == [True]
    await client.aclose()


async def test_error_detail_or_status(client, backend):
    backend.routes["/api/trading/whitelist"] = (400, {"detail": "bad mode"})
    backend.routes["/api/bybit/whitelist"] = (500, {"oops": True})
    assert (await client.get_whitelist()).error == "bad mode"
    resp = await client.get_bybit_whitelist()
    assert resp.error == "HTTP 500"
    assert resp.status == 500


async def test_transport_failure_is_an_error_response(session):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = BackendClient("http://backend.test", session, transport=httpx.MockTransport(boom))
    resp = await client.get_settings()
    assert not resp.ok
    assert "connection refused" in resp.error
    assert resp.status is None
    # A network failure is not an auth failure.
    assert await session.get_token() == "tok-1"
    await client.aclose()


async def test_history_is_parsed(client, backend):
    backend.routes["/api/bybit/history"] = {
        "total": 1,
        "logs": [{"id": 7, "symbol": "BTCUSDT", "side": "long_close", "price": "65000.5", "reason": "stop_loss"}],
    }
    resp = await client.get_bybit_history(limit=50, offset=0)
    assert isinstance(resp.data, HistoryPage)
    trade = resp.data.logs[0]
    assert trade.exchange == "bybit"
    assert trade.symbol == "BTCUSDT"
    assert trade.price == 65000.5
    assert backend.requests[-1].url.params["offset"] == "0"


async def test_chart_parsed_and_malformed(client, backend):
    backend.routes["/api/chart/trade/3"] = chart_body()
    resp = await client.get_trade_chart(3)
    assert isinstance(resp.data, ChartPayload)
    assert len(resp.data.candles) == 5

    backend.routes["/api/chart/position/4"] = {"candles": [{"time": 1}]}
    resp = await client.get_position_chart(4)
    assert resp.data is None
    assert resp.error.startswith("Malformed response")


async def test_close_position_request(client, backend):
    backend.routes["POST /api/bybit/order/close/12"] = {"success": True}
    resp = await client.close_bybit_position(12)
    assert resp.data == {"success": True}
    req = backend.requests[-1]
    assert req.method == "POST"
    assert req.url.params["reason"] == "수동 청산"


async def test_update_settings_body(client, backend):
    backend.routes["PUT /api/settings"] = {"ok": True}
    await client.update_settings({"telegram_chat_id": "42"}, exchange="upbit")
    req = backend.requests[-1]
    assert req.url.params["exchange"] == "upbit"
    assert json.loads(req.content) == {"telegram_chat_id": "42"}


async def test_fake_backend_unknown_route():
    backend = FakeBackend()
    client = BackendClient("http://backend.test", MemorySession(), transport=httpx.MockTransport(backend))
    resp = await client.me()
    assert resp.error == "Not Found"
    assert resp.status == 404
    await client.aclose()
