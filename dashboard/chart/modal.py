from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..api.client import BackendClient
from ..formatting import format_level
from ..models import ChartPayload
from ..reasons import decode, strategy_label
from .overlay import ChartOverlay
from .panes import ChartRenderer


logger = logging.getLogger(__name__)

CHART_KINDS = ("trade", "position")


class ChartModal:
    """Fetches a trade or position chart and keeps the overlay in sync with it.

    Only the most recent ``open`` may apply its result; a fetch that finishes
    after a newer open (or after ``close``) is dropped.
    """

    def __init__(
        self,
        client: BackendClient,
        renderer: ChartRenderer,
        width: int = 900,
        main_height: int = 350,
        rsi_height: int = 100,
    ) -> None:
        self._client = client
        self.overlay = ChartOverlay(renderer, width=width, main_height=main_height, rsi_height=rsi_height)
        self._generation = 0
        self.kind: Optional[str] = None
        self.target_id: Optional[int] = None
        self.payload: Optional[ChartPayload] = None
        self.error: Optional[str] = None
        self.loading = False

    @property
    def is_open(self) -> bool:
        return self.kind is not None

    async def open_trade(self, trade_id: int) -> bool:
        return await self.open("trade", trade_id)

    async def open_position(self, position_id: int) -> bool:
        return await self.open("position", position_id)

    async def open(self, kind: str, target_id: int) -> bool:
        if kind not in CHART_KINDS:
            raise ValueError(f"unknown chart kind: {kind}")
        self._generation += 1
        generation = self._generation
        self.overlay.dispose()
        self.kind = kind
        self.target_id = target_id
        self.payload = None
        self.error = None
        self.loading = True

        if kind == "trade":
            resp = await self._client.get_trade_chart(target_id)
        else:
            resp = await self._client.get_position_chart(target_id)

        if generation != self._generation:
            logger.debug("Dropping stale chart response for %s %s", kind, target_id)
            return False
        self.loading = False
        if resp.error:
            self.error = resp.error
            return False
        try:
            self.overlay.build(resp.data)
        except ValueError as exc:
            logger.warning("Chart %s %s rejected: %s", kind, target_id, exc)
            self.error = str(exc)
            return False
        self.payload = resp.data
        return True

    def close(self) -> None:
        self._generation += 1
        self.overlay.dispose()
        self.kind = None
        self.target_id = None
        self.payload = None
        self.error = None
        self.loading = False

    def _side_display(self) -> Dict[str, Any]:
        payload = self.payload
        if self.kind == "trade" and payload is not None and payload.trade:
            if payload.trade.get("side") == "buy":
                return {"label": "매수", "is_long": True}
            return {"label": "매도", "is_long": False}
        if self.kind == "position" and payload is not None and payload.position:
            if payload.position.get("direction") == "short":
                return {"label": "숏", "is_long": False}
            return {"label": "롱", "is_long": True}
        return {"label": "-", "is_long": True}

    def _entry_price(self) -> Optional[float]:
        payload = self.payload
        if payload is None:
            return None
        if payload.levels.entry:
            return payload.levels.entry
        position = payload.position or {}
        if position.get("entry_price"):
            return float(position["entry_price"])
        trade = payload.trade or {}
        if trade.get("price"):
            return float(trade["price"])
        return None

    def _pnl_percent(self) -> float:
        payload = self.payload
        if payload is None:
            return 0.0
        for info in (payload.trade, payload.position):
            if info and info.get("pnl_percent") is not None:
                return float(info["pnl_percent"])
        return 0.0

    def summary(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "kind": self.kind,
            "id": self.target_id,
            "loading": self.loading,
            "error": self.error,
            "has_rsi": self.overlay.rsi_pane is not None,
        }
        payload = self.payload
        info = payload.info if payload is not None else None
        if payload is None or info is None:
            return out

        exchange = payload.exchange
        levels = payload.levels
        out.update(
            {
                "exchange": exchange,
                "symbol": info.get("coin") or info.get("symbol"),
                "strategy": strategy_label(str(info.get("strategy") or ""), info.get("timeframe")),
                "side": self._side_display(),
                "entry": format_level(self._entry_price(), exchange),
                "stop_loss": format_level(levels.stop_loss, exchange),
                "take_profit": format_level(levels.take_profit, exchange),
                "take_profit_2": format_level(levels.take_profit_2, exchange) if levels.take_profit_2 else None,
                "pnl_percent": f"{self._pnl_percent():.2f}%",
            }
        )
        trade = payload.trade
        if self.kind == "trade" and trade and trade.get("reason"):
            reason = decode(trade.get("reason"), str(trade.get("side") or ""), trade.get("strategy"))
            out["reason"] = trade["reason"]
            out["reason_info"] = {
                "label": reason.label,
                "emoji": reason.emoji,
                "description": reason.description,
                "details": reason.details,
            }
        return out
