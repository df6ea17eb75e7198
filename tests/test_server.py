from __future__ import annotations

import zlib

import httpx
import msgpack
import pytest
from fastapi.testclient import TestClient

from dashboard.api.client import BackendClient
from dashboard.config import Settings
from dashboard.runtime import DashboardRuntime
from dashboard.server import build_app
from dashboard.session import MemorySession

from .conftest import FakeBackend, chart_body
from .test_views import bybit_routes, spot_routes


USER = {"id": 1, "email": "a@b.c"}


def _settings() -> Settings:
    return Settings(
        backend={"base_url": "http://backend.test", "log_stream_retry_ms": 60_000},
        poll={"interval_s": 3600},
        chart={"width_px": 300, "main_height_px": 150, "rsi_height_px": 60, "dpi": 50},
        api={"ws_push_interval": 0.05},
    )


def _backend() -> FakeBackend:
    backend = FakeBackend()
    backend.routes.update(spot_routes())
    backend.routes.update(bybit_routes())
    backend.routes["/api/auth/me"] = USER
    backend.routes["/api/trading/logs"] = lambda request: httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=b""
    )
    backend.routes["/api/chart/trade/1"] = chart_body()
    backend.routes["/api/chart/trade/9"] = (404, {"detail": "Trade not found"})
    return backend


def _runtime(backend: FakeBackend, session: MemorySession) -> DashboardRuntime:
    settings = _settings()
    client = BackendClient(settings.backend.base_url, session, transport=httpx.MockTransport(backend))
    return DashboardRuntime(settings, session=session, client=client)


@pytest.fixture
def backend() -> FakeBackend:
    return _backend()


@pytest.fixture
def runtime(backend) -> DashboardRuntime:
    return _runtime(backend, MemorySession("tok-1", dict(USER)))


@pytest.fixture
def api(runtime):
    with TestClient(build_app(runtime)) as client:
        yield client


def test_requires_login(backend):
    runtime = _runtime(backend, MemorySession())
    with TestClient(build_app(runtime)) as client:
        assert client.get("/api/session").json()["authenticated"] is False
        assert client.get("/api/views/spot").status_code == 401
        assert client.get("/api/session/route", params={"path": "/"}).json()["redirect"] == "/login"
        assert not runtime.active


def test_login_activates_views(backend):
    backend.routes["POST /api/auth/login"] = {"access_token": "fresh", "user": USER}
    runtime = _runtime(backend, MemorySession())
    with TestClient(build_app(runtime)) as client:
        resp = client.post("/api/session/login", json={"email": "a@b.c", "password": "secret123"})
        assert resp.status_code == 200
        assert resp.json()["authenticated"] is True
        assert runtime.active
        assert client.get("/api/views/spot").status_code == 200


def test_login_failure(backend):
    backend.routes["POST /api/auth/login"] = (400, {"detail": "Incorrect email or password"})
    runtime = _runtime(backend, MemorySession())
    with TestClient(build_app(runtime)) as client:
        resp = client.post("/api/session/login", json={"email": "a@b.c", "password": "nope"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Incorrect email or password"
        assert not runtime.active


def test_restored_session_and_logout(api, runtime, backend):
    assert runtime.active
    assert api.get("/api/session/route", params={"path": "/login"}).json()["redirect"] == "/select-exchange"

    backend.routes["POST /api/auth/logout"] = {"message": "ok"}
    assert api.post("/api/session/logout").json()["authenticated"] is False
    assert not runtime.active
    assert api.get("/api/views/spot").status_code == 401


def test_spot_view_snapshot(api):
    resp = api.post("/api/views/spot/period", params={"days": 7})
    assert resp.status_code == 200
    snap = resp.json()
    assert snap["exchange"] == "upbit"
    assert snap["period_days"] == 7
    assert snap["running"] is True
    assert snap["portfolio"]["positions"][0]["coin"] == "KRW-BTC"

    assert api.get("/api/views/spot").json()["alerts"] == []
    assert api.get("/api/views/futures").status_code == 404


def test_derivatives_mode_switch(api, backend):
    resp = api.post("/api/views/derivatives/mode", params={"mode": "real"})
    assert resp.status_code == 200
    assert resp.json()["active_mode"] == "real"
    assert backend.calls("/api/bybit/portfolio")[-1].url.params["mode"] == "real"
    assert api.post("/api/views/derivatives/mode", params={"mode": "paper"}).status_code == 400


def test_actions_require_confirmation(api, backend):
    backend.routes["POST /api/system/start"] = {"message": "started"}
    assert api.post("/api/actions/spot/bot", params={"running": True}).status_code == 400
    resp = api.post("/api/actions/spot/bot", params={"running": True, "confirm": True})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "data": {"message": "started"}}


def test_action_failure_is_reported(api, backend, runtime):
    backend.routes["POST /api/bybit/order/close/5"] = {"success": False, "message": "position not found"}
    resp = api.post("/api/actions/derivatives/close/5", params={"confirm": True})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "position not found"
    assert runtime.recent_alerts()[-1]["message"] == "청산 실패: position not found"


def test_guide_is_public(backend):
    runtime = _runtime(backend, MemorySession())
    with TestClient(build_app(runtime)) as client:
        assert len(client.get("/api/views/guide").json()["strategies"]) == 11
        short = client.get("/api/views/guide", params={"direction": "short"}).json()
        assert len(short["strategies"]) == 5
        assert client.get("/api/views/guide", params={"strategy": "nope"}).status_code == 404


def test_guide_selection_is_per_request(api):
    default = api.get("/api/views/guide").json()["selected"]["id"]
    picked = api.get("/api/views/guide", params={"strategy": "harmonic"}).json()
    assert picked["selected"]["id"] == "harmonic"
    assert api.get("/api/views/guide").json()["selected"]["id"] == default


def test_history_view(api, backend):
    backend.routes["/api/bybit/history"] = {
        "total": 1,
        "logs": [{"id": 4, "symbol": "BTCUSDT", "side": "long_close", "reason": "stop_loss (lost -2.5%)", "pnl_percent": -2.5}],
    }
    backend.routes["/api/bybit/history/returns-chart"] = {"data": []}
    snap = api.get("/api/views/history", params={"exchange": "bybit"}).json()
    assert snap["exchange"] == "bybit"
    assert snap["rows"][0]["reason"]["label"] == "손절"
    assert snap["rows"][0]["pnl_percent"] == "-2.50%"
    assert api.get("/api/views/history", params={"exchange": "binance"}).status_code == 400


def test_exchange_selection(api):
    resp = api.put("/api/session/exchange", json={"exchange": "bybit"})
    assert resp.json() == {"exchange": "bybit", "redirect": "/bybit"}
    assert api.get("/api/session").json()["exchange"] == "bybit"
    assert api.put("/api/session/exchange", json={"exchange": "binance"}).status_code == 400


def test_chart_summary_and_png(api):
    summary = api.get("/api/chart/trade/1").json()
    assert summary["symbol"] == "KRW-BTC"
    assert summary["has_rsi"] is True

    png = api.get("/api/chart/trade/1/png", params={"pane": "rsi"})
    assert png.status_code == 200
    assert png.headers["content-type"] == "image/png"
    assert png.content.startswith(b"\x89PNG")


def test_chart_errors(api):
    assert api.get("/api/chart/trade/9").json()["error"] == "Trade not found"
    assert api.get("/api/chart/trade/9/png").status_code == 502
    assert api.get("/api/chart/pattern/1").status_code == 404


def test_websocket_pushes_packed_snapshots(api):
    with api.websocket_connect("/ws/dashboard?exchange=derivatives") as ws:
        payload = msgpack.unpackb(zlib.decompress(ws.receive_bytes()), raw=False)
    assert payload["view"] == "derivatives"
    assert payload["active"] is True
    assert payload["exchange"] == "bybit"


async def test_runtime_session_expiry_deactivates(backend):
    runtime = _runtime(backend, MemorySession("tok-1", dict(USER)))
    await runtime.start()
    assert runtime.active
    spot = runtime.spot

    runtime._on_session_expired()
    assert not runtime.active
    assert spot.closed
    assert runtime.recent_alerts(1)[0]["message"].startswith("세션이 만료")
    assert runtime.recent_alerts(0) == []
    await runtime.stop()
