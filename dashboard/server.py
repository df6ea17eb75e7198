from __future__ import annotations

import asyncio
import logging
import zlib
from typing import Any, Dict, Optional, Union

import msgpack
from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from .api.client import ApiResponse
from .chart.modal import CHART_KINDS, ChartModal
from .runtime import DashboardRuntime
from .views.derivatives import DerivativesDashboard
from .views.guide import GuideView
from .views.spot import SpotDashboard


logger = logging.getLogger(__name__)

VIEW_EXCHANGES = ("spot", "derivatives")


class Credentials(BaseModel):
    email: str
    password: str


class ExchangeChoice(BaseModel):
    exchange: str


def _require_confirm(confirm: bool) -> None:
    if not confirm:
        raise HTTPException(status_code=400, detail="confirmation required (confirm=true)")


def _error_status(resp: ApiResponse, default: int) -> int:
    # Failures reported in a 2xx body still map to an error status.
    if resp.status is not None and resp.status >= 400:
        return resp.status
    return default


def _command_result(resp: Optional[ApiResponse]) -> Dict[str, Any]:
    if resp is None:
        raise HTTPException(status_code=409, detail="command declined")
    if resp.error:
        raise HTTPException(status_code=_error_status(resp, 502), detail=resp.error)
    return {"ok": True, "data": resp.data}


def _pack(payload: Dict[str, Any]) -> bytes:
    return zlib.compress(msgpack.packb(payload, use_bin_type=True))


def build_app(runtime: DashboardRuntime) -> FastAPI:
    settings = runtime.settings
    app = FastAPI(title="maxi-dashboard", root_path=settings.api.base_path or "")
    app.state.runtime = runtime
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        await runtime.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await runtime.stop()

    async def require_session() -> None:
        if not await runtime.auth.is_authenticated():
            raise HTTPException(status_code=401, detail="login required")
        await runtime.activate()

    def polling_view(exchange: str) -> Union[SpotDashboard, DerivativesDashboard]:
        if exchange not in VIEW_EXCHANGES:
            raise HTTPException(status_code=404, detail=f"unknown view: {exchange}")
        view = runtime.spot if exchange == "spot" else runtime.derivatives
        if view is None:
            raise HTTPException(status_code=503, detail="views not active")
        return view

    # session

    @app.get("/api/session")
    async def get_session() -> Dict[str, Any]:
        return await runtime.auth.snapshot()

    @app.get("/api/session/route")
    async def get_route(path: str = Query(...)) -> Dict[str, Any]:
        return {"path": path, "redirect": await runtime.auth.route(path)}

    @app.post("/api/session/login")
    async def login(body: Credentials) -> Dict[str, Any]:
        resp = await runtime.auth.login(body.email, body.password)
        if resp.error:
            raise HTTPException(status_code=_error_status(resp, 401), detail=resp.error)
        await runtime.activate()
        return await runtime.auth.snapshot()

    @app.post("/api/session/register")
    async def register(body: Credentials) -> Dict[str, Any]:
        resp = await runtime.auth.register(body.email, body.password)
        if resp.error:
            raise HTTPException(status_code=_error_status(resp, 400), detail=resp.error)
        await runtime.activate()
        return await runtime.auth.snapshot()

    @app.post("/api/session/logout")
    async def logout() -> Dict[str, Any]:
        runtime.deactivate()
        await runtime.auth.logout()
        return await runtime.auth.snapshot()

    @app.put("/api/session/exchange", dependencies=[Depends(require_session)])
    async def select_exchange(body: ExchangeChoice) -> Dict[str, Any]:
        try:
            redirect = await runtime.auth.select_exchange(body.exchange)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"exchange": body.exchange, "redirect": redirect}

    # views (fixed paths first so they win over /api/views/{exchange})

    @app.get("/api/views/history", dependencies=[Depends(require_session)])
    async def get_history(
        exchange: Optional[str] = Query(None),
        mode: Optional[str] = Query(None),
        strategy: Optional[str] = Query(None),
        side: Optional[str] = Query(None),
        coin: Optional[str] = Query(None),
        offset: int = Query(0, ge=0),
    ) -> Dict[str, Any]:
        history = runtime.history
        if history is None:
            raise HTTPException(status_code=503, detail="views not active")
        try:
            await history.set_filters(
                exchange=exchange, offset=offset, mode=mode, strategy=strategy, side=side, coin=coin
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return history.snapshot()

    @app.get("/api/views/settings", dependencies=[Depends(require_session)])
    async def get_settings_view(exchange: Optional[str] = Query(None)) -> Dict[str, Any]:
        chosen = exchange or await runtime.auth.last_exchange() or "upbit"
        view = runtime.settings_view(chosen)
        await view.load()
        return view.snapshot()

    @app.get("/api/views/guide")
    async def get_guide(
        strategy: Optional[str] = Query(None),
        direction: Optional[str] = Query(None, pattern="^(long|short)$"),
    ) -> Dict[str, Any]:
        # Selection is per request; the catalogue itself is static.
        guide = GuideView()
        if strategy:
            try:
                guide.select(strategy)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail=str(exc)) from exc
        return guide.snapshot(direction)

    @app.get("/api/views/{exchange}", dependencies=[Depends(require_session)])
    async def get_view(exchange: str) -> Dict[str, Any]:
        out = polling_view(exchange).snapshot()
        out["alerts"] = runtime.recent_alerts()
        return out

    @app.post("/api/views/{exchange}/mode", dependencies=[Depends(require_session)])
    async def switch_mode(exchange: str, mode: str = Query(...)) -> Dict[str, Any]:
        view = polling_view(exchange)
        try:
            await view.switch_mode(mode)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return view.snapshot()

    @app.post("/api/views/{exchange}/period", dependencies=[Depends(require_session)])
    async def set_period(exchange: str, days: int = Query(..., ge=1)) -> Dict[str, Any]:
        view = polling_view(exchange)
        await view.set_period_days(days)
        return view.snapshot()

    # charts

    async def open_chart(kind: str, target_id: int) -> ChartModal:
        if kind not in CHART_KINDS:
            raise HTTPException(status_code=404, detail=f"unknown chart kind: {kind}")
        modal = runtime.chart_modal()
        await modal.open(kind, target_id)
        return modal

    @app.get("/api/chart/{kind}/{target_id}", dependencies=[Depends(require_session)])
    async def get_chart(kind: str, target_id: int) -> Dict[str, Any]:
        modal = await open_chart(kind, target_id)
        try:
            return modal.summary()
        finally:
            modal.close()

    @app.get("/api/chart/{kind}/{target_id}/png", dependencies=[Depends(require_session)])
    async def get_chart_png(
        kind: str,
        target_id: int,
        pane: str = Query("main", pattern="^(main|rsi)$"),
    ) -> Response:
        modal = await open_chart(kind, target_id)
        try:
            if modal.error:
                raise HTTPException(status_code=502, detail=modal.error)
            target = modal.overlay.main_pane if pane == "main" else modal.overlay.rsi_pane
            if target is None:
                raise HTTPException(status_code=404, detail=f"no {pane} pane for this chart")
            png = target.render_png()
        finally:
            modal.close()
        return Response(content=png, media_type="image/png")

    # actions

    @app.post("/api/actions/{exchange}/bot", dependencies=[Depends(require_session)])
    async def toggle_bot(exchange: str, running: bool = Query(...), confirm: bool = Query(False)) -> Dict[str, Any]:
        _require_confirm(confirm)
        view = polling_view(exchange)
        return _command_result(await view.toggle_bot(running))

    @app.post("/api/actions/spot/panic-sell", dependencies=[Depends(require_session)])
    async def panic_sell(confirm: bool = Query(False)) -> Dict[str, Any]:
        _require_confirm(confirm)
        return _command_result(await polling_view("spot").panic_sell())

    @app.post("/api/actions/spot/sell", dependencies=[Depends(require_session)])
    async def sell_position(market: str = Query(...), confirm: bool = Query(False)) -> Dict[str, Any]:
        _require_confirm(confirm)
        return _command_result(await polling_view("spot").sell_position(market))

    @app.post("/api/actions/derivatives/close/{position_id}", dependencies=[Depends(require_session)])
    async def close_position(position_id: int, confirm: bool = Query(False)) -> Dict[str, Any]:
        _require_confirm(confirm)
        return _command_result(await polling_view("derivatives").close_position(position_id))

    @app.post("/api/actions/derivatives/open", dependencies=[Depends(require_session)])
    async def open_position(symbol: str = Query(...), confirm: bool = Query(False)) -> Dict[str, Any]:
        _require_confirm(confirm)
        return _command_result(await polling_view("derivatives").open_position(symbol))

    # push

    @app.websocket("/ws/dashboard")
    async def ws_dashboard(websocket: WebSocket) -> None:
        await websocket.accept()
        exchange = websocket.query_params.get("exchange") or "spot"
        if exchange not in VIEW_EXCHANGES:
            await websocket.close(code=1008)
            return
        try:
            sleep_s = float(settings.api.ws_push_interval)
            while True:
                view = runtime.spot if exchange == "spot" else runtime.derivatives
                if view is None or not runtime.active:
                    payload: Dict[str, Any] = {"view": exchange, "active": False}
                else:
                    payload = view.snapshot()
                    payload["active"] = True
                    payload["alerts"] = runtime.recent_alerts()
                await websocket.send_bytes(_pack(payload))
                await asyncio.sleep(sleep_s)
        except WebSocketDisconnect:
            return
        except Exception:
            logger.exception("WS dashboard error")
            try:
                await websocket.close()
            except Exception:
                pass

    return app
