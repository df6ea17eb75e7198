from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from ..api.client import BackendClient
from ..formatting import DERIVATIVES, SPOT, format_coin_name, format_krw, format_percent, format_usdt
from ..models import TradeRecord
from ..reasons import decode, side_info, strategy_label


logger = logging.getLogger(__name__)

EXCHANGES = (SPOT, DERIVATIVES)


@dataclass(frozen=True, slots=True)
class HistoryFilters:
    mode: Optional[str] = None
    strategy: Optional[str] = None
    side: Optional[str] = None
    coin: Optional[str] = None
    limit: int = 50
    offset: int = 0


def history_row(trade: TradeRecord) -> Dict[str, Any]:
    # Derivatives rows fall back to their strategy when the reason is unknown.
    strategy = trade.strategy if trade.exchange == DERIVATIVES else None
    info = decode(trade.reason, trade.side, strategy)
    side_label, is_long = side_info(trade.side)
    money = format_usdt if trade.exchange == DERIVATIVES else format_krw
    return {
        "id": trade.id,
        "created_at": trade.created_at,
        "mode": trade.mode,
        "strategy": strategy_label(trade.strategy, trade.timeframe),
        "coin": format_coin_name(trade.symbol, trade.exchange),
        "side": side_label,
        "is_long": is_long,
        "price": money(trade.price),
        "quantity": trade.quantity,
        "total_amount": money(trade.total_amount),
        "pnl_percent": format_percent(trade.pnl_percent) if trade.pnl_percent is not None else None,
        "pnl_positive": trade.pnl_percent is not None and trade.pnl_percent >= 0,
        "reason": {
            "raw": trade.reason,
            "label": info.label,
            "emoji": info.emoji,
            "description": info.description,
            "details": info.details,
        },
        "chart": {"kind": "trade", "id": trade.id},
    }


class HistoryView:
    """Paged trade history with the cumulative returns chart for one exchange tab."""

    def __init__(self, client: BackendClient, page_size: int = 50, exchange: str = SPOT) -> None:
        if exchange not in EXCHANGES:
            raise ValueError(f"unknown exchange: {exchange}")
        self._client = client
        self._generation = 0
        self.exchange = exchange
        self.filters = HistoryFilters(limit=page_size)
        self.trades: List[TradeRecord] = []
        self.total = 0
        self.returns_chart: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.loading = False

    async def load(self) -> bool:
        self._generation += 1
        generation = self._generation
        self.loading = True
        f = self.filters
        if self.exchange == DERIVATIVES:
            history = self._client.get_bybit_history(
                mode=f.mode, strategy=f.strategy, side=f.side, limit=f.limit, offset=f.offset
            )
            chart = self._client.get_bybit_returns_chart(mode=f.mode, strategy=f.strategy)
        else:
            history = self._client.get_trade_history(
                mode=f.mode,
                strategy=f.strategy,
                coin=f.coin or None,
                side=f.side,
                exchange=SPOT,
                limit=f.limit,
                offset=f.offset,
            )
            chart = self._client.get_returns_chart(mode=f.mode, strategy=f.strategy)
        history_resp, chart_resp = await asyncio.gather(history, chart)

        if generation != self._generation:
            return False
        self.loading = False
        if history_resp.ok:
            self.trades = list(history_resp.data.logs)
            self.total = history_resp.data.total
            self.error = None
        else:
            self.error = history_resp.error
        self.returns_chart = chart_resp.data if chart_resp.ok else None
        return True

    async def set_exchange(self, exchange: str) -> bool:
        if exchange not in EXCHANGES:
            raise ValueError(f"unknown exchange: {exchange}")
        self.exchange = exchange
        self.filters = replace(self.filters, offset=0)
        return await self.load()

    async def set_filters(self, exchange: Optional[str] = None, offset: int = 0, **changes: Any) -> bool:
        """Apply filter changes and reload; empty strings clear a filter."""
        cleaned = {k: (v or None) for k, v in changes.items() if k in ("mode", "strategy", "side", "coin")}
        unknown = set(changes) - set(cleaned)
        if unknown:
            raise ValueError(f"unknown history filters: {sorted(unknown)}")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if exchange is not None:
            if exchange not in EXCHANGES:
                raise ValueError(f"unknown exchange: {exchange}")
            self.exchange = exchange
        self.filters = replace(self.filters, offset=offset, **cleaned)
        return await self.load()

    @property
    def has_previous(self) -> bool:
        return self.filters.offset > 0

    @property
    def has_next(self) -> bool:
        return self.filters.offset + self.filters.limit < self.total

    async def next_page(self) -> bool:
        if not self.has_next:
            return False
        self.filters = replace(self.filters, offset=self.filters.offset + self.filters.limit)
        return await self.load()

    async def previous_page(self) -> bool:
        if not self.has_previous:
            return False
        self.filters = replace(self.filters, offset=max(0, self.filters.offset - self.filters.limit))
        return await self.load()

    def snapshot(self) -> Dict[str, Any]:
        f = self.filters
        return {
            "view": "history",
            "exchange": self.exchange,
            "loading": self.loading,
            "error": self.error,
            "filters": {
                "mode": f.mode,
                "strategy": f.strategy,
                "side": f.side,
                "coin": f.coin,
                "limit": f.limit,
                "offset": f.offset,
            },
            "total": self.total,
            "range": [f.offset + 1 if self.total else 0, min(f.offset + f.limit, self.total)],
            "has_previous": self.has_previous,
            "has_next": self.has_next,
            "rows": [history_row(t) for t in self.trades],
            "returns_chart": self.returns_chart,
        }
