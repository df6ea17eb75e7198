from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..api.client import ApiResponse, BackendClient
from ..formatting import DERIVATIVES, format_coin_name
from ..models import LogEntry, PositionRecord
from .base import ConfirmCallback, NotifyCallback, PollingView, PollTask, check_mode, require_success, to_jsonable
from .spot import log_rows


logger = logging.getLogger(__name__)


class DerivativesDashboard(PollingView):
    """Derivatives (Bybit) dashboard. Only the active mode is polled."""

    name = "derivatives"

    def __init__(
        self,
        client: BackendClient,
        interval_s: Optional[float] = 10.0,
        log_limit: int = 50,
        period_days: int = 1,
        notify: Optional[NotifyCallback] = None,
        confirm: Optional[ConfirmCallback] = None,
    ) -> None:
        super().__init__(client, interval_s=interval_s, notify=notify, confirm=confirm)
        self.active_mode = "simulation"
        self.log_limit = log_limit
        self.period_days = period_days
        self.whitelist: List[Dict[str, Any]] = []
        self.whitelist_updated_at: Optional[str] = None
        self.portfolio: Optional[Dict[str, Any]] = None
        self.logs: List[LogEntry] = []
        self.bot_status: Optional[Dict[str, Any]] = None
        self.returns: Optional[Dict[str, Any]] = None

    def poll_tasks(self) -> List[PollTask]:
        c = self._client
        mode = self.active_mode
        return [
            PollTask("whitelist", lambda: c.get_bybit_whitelist(mode), self._apply_whitelist),
            PollTask("portfolio", lambda: c.get_bybit_portfolio(mode), self._apply_portfolio),
            PollTask("logs", lambda: c.get_bybit_logs(self.log_limit, mode), self._apply_logs),
            PollTask("bot_status", c.get_bybit_bot_status, self._apply_bot_status),
            PollTask("returns", lambda: c.get_bybit_period_returns(mode, self.period_days), self._apply_returns),
        ]

    def _apply_whitelist(self, data: Dict[str, Any]) -> None:
        self.whitelist = [dict(coin) for coin in data["coins"]]
        self.whitelist_updated_at = data.get("updated_at")

    def _apply_portfolio(self, data: Dict[str, Any]) -> None:
        self.portfolio = data

    def _apply_logs(self, data: List[LogEntry]) -> None:
        self.logs = list(data)

    def _apply_bot_status(self, data: Dict[str, Any]) -> None:
        self.bot_status = data

    def _apply_returns(self, data: Dict[str, Any]) -> None:
        self.returns = data

    @property
    def positions(self) -> List[PositionRecord]:
        if not self.portfolio:
            return []
        return list(self.portfolio.get("positions") or [])

    @property
    def running(self) -> bool:
        status = self.bot_status or {}
        return bool(status.get(f"{self.active_mode}_running"))

    async def switch_mode(self, mode: str) -> None:
        check_mode(mode)
        if mode == self.active_mode:
            return
        self.discard_inflight()
        self.active_mode = mode
        self.whitelist = []
        self.portfolio = None
        self.logs = []
        self.returns = None
        await self.refresh()

    async def set_period_days(self, days: int) -> None:
        if days <= 0:
            raise ValueError("period must be at least one day")
        self.period_days = days
        await self.refresh()

    async def toggle_bot(self, running: bool) -> Optional[ApiResponse]:
        mode = self.active_mode
        if running:
            return await self.run_command("봇 제어", lambda: self._client.start_bybit_bot(mode))
        return await self.run_command("봇 제어", lambda: self._client.stop_bybit_bot(mode))

    async def close_position(self, position_id: int) -> Optional[ApiResponse]:
        symbol = next((p.symbol for p in self.positions if p.id == position_id), str(position_id))

        async def command() -> ApiResponse:
            return require_success(await self._client.close_bybit_position(position_id), "청산에 실패했습니다")

        return await self.run_command(
            "청산",
            command,
            confirm_message=f"{format_coin_name(symbol, DERIVATIVES)} 포지션을 청산할까요?",
        )

    async def open_position(self, symbol: str) -> Optional[ApiResponse]:
        mode = self.active_mode

        async def command() -> ApiResponse:
            return require_success(await self._client.open_bybit_position(symbol, mode), "진입에 실패했습니다")

        return await self.run_command(
            "진입",
            command,
            confirm_message=f"{format_coin_name(symbol, DERIVATIVES)} 롱 포지션을 진입할까요?",
        )

    def snapshot(self) -> Dict[str, Any]:
        out = super().snapshot()
        out.update(
            {
                "exchange": DERIVATIVES,
                "active_mode": self.active_mode,
                "period_days": self.period_days,
                "running": self.running,
                "bot_status": self.bot_status,
                "whitelist": self.whitelist,
                "whitelist_updated_at": self.whitelist_updated_at,
                "portfolio": to_jsonable(self.portfolio),
                "logs": log_rows(self.logs, DERIVATIVES),
                "returns": self.returns,
            }
        )
        return out
