from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from ..models import (
    LogEntry,
    chart_from_dict,
    history_from_dict,
    holding_from_dict,
    log_entry_from_dict,
    position_from_dict,
)
from ..session import SessionProvider


logger = logging.getLogger(__name__)

SessionExpiredCallback = Callable[[], Any]


@dataclass(slots=True)
class ApiResponse:
    data: Any = None
    error: Optional[str] = None
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    if not detail:
        return f"HTTP {resp.status_code}"
    return detail if isinstance(detail, str) else str(detail)


def _parse_logs(raw: Mapping[str, Any]) -> List[LogEntry]:
    return [log_entry_from_dict(x) for x in raw.get("logs") or []]


def _parse_spot_portfolio(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(raw)
    out["positions"] = [holding_from_dict(p) for p in raw.get("positions") or []]
    return out


def _parse_bybit_portfolio(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(raw)
    out["positions"] = [position_from_dict(p) for p in raw.get("positions") or []]
    return out


class BackendClient:
    """Async wrapper around the trading backend's REST API.

    Every call returns an ApiResponse; HTTP, transport and decoding failures
    end up in ``error`` instead of being raised.
    """

    def __init__(
        self,
        base_url: str,
        session: SessionProvider,
        timeout: float = 10.0,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = timeout
        self._on_session_expired = on_session_expired
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def session(self) -> SessionProvider:
        return self._session

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            )
        return self._client

    async def __aenter__(self) -> "BackendClient":
        _ = self.http
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def auth_headers(self) -> Dict[str, str]:
        token = await self._session.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def expire_session(self) -> None:
        logger.warning("Backend rejected credentials; clearing session")
        await self._session.clear_session()
        if self._on_session_expired is not None:
            await maybe_await(self._on_session_expired())

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> ApiResponse:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        headers = {"Content-Type": "application/json"}
        try:
            headers.update(await self.auth_headers())
            resp = await self.http.request(method, endpoint, params=query, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, endpoint, exc)
            return ApiResponse(error=str(exc) or exc.__class__.__name__)

        if not resp.is_success:
            if resp.status_code == 401:
                await self.expire_session()
            return ApiResponse(error=_error_detail(resp), status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            return ApiResponse(error=f"Invalid JSON response: {exc}", status=resp.status_code)
        if parse is not None:
            try:
                data = parse(data)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Malformed payload from %s: %r", endpoint, exc)
                return ApiResponse(error=f"Malformed response: {exc!r}", status=resp.status_code)
        return ApiResponse(data=data, status=resp.status_code)

    async def get(self, endpoint: str, parse: Optional[Callable[[Any], Any]] = None, **params: Any) -> ApiResponse:
        return await self.request("GET", endpoint, params=params, parse=parse)

    async def post(self, endpoint: str, json: Any = None, **params: Any) -> ApiResponse:
        return await self.request("POST", endpoint, params=params, json=json)

    async def put(self, endpoint: str, json: Any = None, **params: Any) -> ApiResponse:
        return await self.request("PUT", endpoint, params=params, json=json)

    # auth

    async def login(self, email: str, password: str) -> ApiResponse:
        return await self.post("/api/auth/login", json={"email": email, "password": password})

    async def register(self, email: str, password: str) -> ApiResponse:
        return await self.post("/api/auth/register", json={"email": email, "password": password})

    async def logout(self) -> ApiResponse:
        return await self.post("/api/auth/logout")

    async def me(self) -> ApiResponse:
        return await self.get("/api/auth/me")

    async def change_password(self, current_password: str, new_password: str) -> ApiResponse:
        return await self.post(
            "/api/auth/change-password",
            json={"current_password": current_password, "new_password": new_password},
        )

    # spot: bot control

    async def get_bot_status(self, mode: Optional[str] = None) -> ApiResponse:
        return await self.get("/api/system/status", mode=mode)

    async def start_bot(self, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/system/start", mode=mode)

    async def stop_bot(self, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/system/stop", mode=mode)

    async def panic_sell(self, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/system/panic-sell", mode=mode)

    async def sell_position(self, market: str, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/system/sell-position", market=market, mode=mode)

    # spot: trading

    async def get_whitelist(self, mode: str = "simulation") -> ApiResponse:
        return await self.get("/api/trading/whitelist", mode=mode)

    async def refresh_whitelist(self) -> ApiResponse:
        return await self.post("/api/trading/whitelist/refresh")

    async def get_trade_history(
        self,
        mode: Optional[str] = None,
        strategy: Optional[str] = None,
        coin: Optional[str] = None,
        side: Optional[str] = None,
        exchange: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ApiResponse:
        return await self.get(
            "/api/trading/history",
            parse=lambda raw: history_from_dict(raw, "upbit"),
            mode=mode,
            strategy=strategy,
            coin=coin,
            side=side,
            exchange=exchange,
            limit=limit,
            offset=offset,
        )

    async def get_portfolio(self, mode: str = "simulation") -> ApiResponse:
        return await self.get("/api/trading/portfolio", parse=_parse_spot_portfolio, mode=mode)

    async def get_recent_logs(self, limit: int = 100, mode: Optional[str] = None) -> ApiResponse:
        return await self.get("/api/trading/logs/recent", parse=_parse_logs, limit=limit, mode=mode)

    async def get_period_returns(self, mode: str = "simulation", days: int = 1) -> ApiResponse:
        return await self.get("/api/trading/returns", mode=mode, days=days)

    async def get_returns_chart(self, mode: Optional[str] = None, strategy: Optional[str] = None) -> ApiResponse:
        return await self.get("/api/trading/history/returns-chart", mode=mode, strategy=strategy)

    # spot: settings

    async def get_settings(self, exchange: str = "upbit") -> ApiResponse:
        return await self.get("/api/settings", exchange=exchange)

    async def update_settings(self, updates: Mapping[str, Any], exchange: str = "upbit") -> ApiResponse:
        return await self.put("/api/settings", json=dict(updates), exchange=exchange)

    async def test_telegram(self) -> ApiResponse:
        return await self.post("/api/settings/telegram/test", json={})

    async def validate_upbit(self) -> ApiResponse:
        return await self.post("/api/settings/validate-upbit")

    # derivatives

    async def get_bybit_whitelist(self, mode: str = "simulation") -> ApiResponse:
        return await self.get("/api/bybit/whitelist", mode=mode)

    async def get_bybit_portfolio(self, mode: str = "simulation") -> ApiResponse:
        return await self.get("/api/bybit/portfolio", parse=_parse_bybit_portfolio, mode=mode)

    async def get_bybit_history(
        self,
        mode: Optional[str] = None,
        strategy: Optional[str] = None,
        side: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ApiResponse:
        return await self.get(
            "/api/bybit/history",
            parse=lambda raw: history_from_dict(raw, "bybit"),
            mode=mode,
            strategy=strategy,
            side=side,
            limit=limit,
            offset=offset,
        )

    async def get_bybit_logs(self, limit: int = 100, mode: Optional[str] = None) -> ApiResponse:
        return await self.get("/api/bybit/logs/recent", parse=_parse_logs, limit=limit, mode=mode)

    async def get_bybit_period_returns(self, mode: str = "simulation", days: int = 1) -> ApiResponse:
        return await self.get("/api/bybit/returns", mode=mode, days=days)

    async def get_bybit_returns_chart(self, mode: Optional[str] = None, strategy: Optional[str] = None) -> ApiResponse:
        return await self.get("/api/bybit/history/returns-chart", mode=mode, strategy=strategy)

    async def get_bybit_settings(self) -> ApiResponse:
        return await self.get("/api/bybit/settings")

    async def update_bybit_api_keys(self, api_key: str, api_secret: str) -> ApiResponse:
        return await self.put("/api/bybit/settings/api", json={"api_key": api_key, "api_secret": api_secret})

    async def update_bybit_strategy_settings(self, settings: Mapping[str, Any]) -> ApiResponse:
        return await self.put("/api/bybit/settings/strategy", json=dict(settings))

    async def open_bybit_position(self, symbol: str, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/bybit/order/open", symbol=symbol, mode=mode)

    async def close_bybit_position(self, position_id: int, reason: str = "수동 청산") -> ApiResponse:
        return await self.post(f"/api/bybit/order/close/{int(position_id)}", reason=reason)

    async def get_bybit_bot_status(self, mode: Optional[str] = None) -> ApiResponse:
        return await self.get("/api/bybit/bot/status", mode=mode)

    async def start_bybit_bot(self, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/bybit/bot/start", mode=mode)

    async def stop_bybit_bot(self, mode: str = "simulation") -> ApiResponse:
        return await self.post("/api/bybit/bot/stop", mode=mode)

    # charts

    async def get_trade_chart(self, trade_id: int) -> ApiResponse:
        return await self.get(f"/api/chart/trade/{int(trade_id)}", parse=chart_from_dict)

    async def get_position_chart(self, position_id: int) -> ApiResponse:
        return await self.get(f"/api/chart/position/{int(position_id)}", parse=chart_from_dict)
