from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from dashboard.api.client import BackendClient
from dashboard.chart.panes import PaneOptions, PriceLineSpec
from dashboard.session import MemorySession


# fake chart renderer


class FakePriceLine:
    def __init__(self, spec: PriceLineSpec) -> None:
        self.spec = spec
        self.removed = False

    def remove(self) -> None:
        self.removed = True


class FakeSeries:
    def __init__(self, kind: str, style: Any) -> None:
        self.kind = kind
        self.style = style
        self.points: List[Any] = []
        self.lines: List[FakePriceLine] = []

    def set_data(self, points) -> None:
        self.points = list(points)

    def create_price_line(self, spec: PriceLineSpec) -> FakePriceLine:
        line = FakePriceLine(spec)
        self.lines.append(line)
        return line


class FakePane:
    def __init__(self, options: PaneOptions) -> None:
        self.options = options
        self.series: List[FakeSeries] = []
        self.range: Optional[Tuple[float, float]] = None
        self.callbacks: List[Callable] = []
        self.width = options.width
        self.fitted = False
        self.disposed = 0

    def add_candles(self, style) -> FakeSeries:
        series = FakeSeries("candles", style)
        self.series.append(series)
        return series

    def add_line(self, style) -> FakeSeries:
        series = FakeSeries("line", style)
        self.series.append(series)
        return series

    def visible_range(self):
        return self.range

    def set_visible_range(self, rng) -> None:
        self.range = tuple(rng)
        for cb in list(self.callbacks):
            cb(self.range)

    def subscribe_visible_range(self, callback):
        self.callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self.callbacks:
                self.callbacks.remove(callback)

        return unsubscribe

    def fit_content(self) -> None:
        self.fitted = True
        times = [p.time for s in self.series for p in s.points]
        if times:
            self.set_visible_range((min(times), max(times)))

    def resize(self, width: int) -> None:
        self.width = width

    def dispose(self) -> None:
        self.disposed += 1


class FakeRenderer:
    def __init__(self, fail_on: Optional[int] = None) -> None:
        self.panes: List[FakePane] = []
        self._fail_on = fail_on

    def create_pane(self, options: PaneOptions) -> FakePane:
        if self._fail_on is not None and len(self.panes) + 1 == self._fail_on:
            raise RuntimeError("renderer unavailable")
        pane = FakePane(options)
        self.panes.append(pane)
        return pane


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


# fake backend


Route = Any  # dict/list payload, (status, payload) tuple, or callable(request) -> httpx.Response


class FakeBackend:
    """Path-keyed canned responses for httpx.MockTransport; records every request."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(f"{request.method} {request.url.path}", self.routes.get(request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        if callable(route):
            result = route(request)
            if hasattr(result, "__await__"):
                result = await result
            return result
        if isinstance(route, tuple):
            status, payload = route
            return httpx.Response(status, json=payload)
        return httpx.Response(200, json=route)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session() -> MemorySession:
    return MemorySession(token="tok-1", user={"id": 1, "email": "a@b.c"})


@pytest.fixture
async def client(backend: FakeBackend, session: MemorySession):
    c = BackendClient("http://backend.test", session, transport=httpx.MockTransport(backend))
    yield c
    await c.aclose()


def sse_body(*events: Tuple[str, Any]) -> bytes:
    chunks = []
    for name, data in events:
        payload = data if isinstance(data, str) else json.dumps(data)
        chunks.append(f"event: {name}\ndata: {payload}\n\n")
    return "".join(chunks).encode("utf-8")


def candle_rows(n: int, start: int = 1_700_000_000, step: int = 86_400) -> List[Dict[str, Any]]:
    rows = []
    for i in range(n):
        base = 100.0 + i
        rows.append(
            {
                "time": start + i * step,
                "open": base,
                "high": base + 2,
                "low": base - 2,
                "close": base + 1,
                "volume": 10.0,
            }
        )
    return rows


def chart_body(n: int = 5, exchange: str = "upbit", **overrides: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "candles": candle_rows(n),
        "indicators": {
            "ma5": [100.0 + i for i in range(n)],
            "ma20": [99.0 + i for i in range(n)],
            "bb_upper": [110.0 + i for i in range(n)],
            "bb_lower": [90.0 + i for i in range(n)],
            "rsi": [40.0 + i for i in range(n)],
        },
        "levels": {"entry": 101.0, "stop_loss": 95.0, "take_profit": 110.0, "take_profit_2": None},
        "trade": {
            "id": 1,
            "coin": "KRW-BTC",
            "strategy": "squirrel",
            "timeframe": "day",
            "side": "sell",
            "price": 101.0,
            "pnl_percent": 3.456,
            "reason": "take_profit",
            "exchange": exchange,
        },
    }
    body.update(overrides)
    return body
