from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..api.client import ApiResponse, BackendClient
from ..formatting import SPOT, format_coin_name, log_tone
from ..models import LogEntry
from .base import MODES, ConfirmCallback, NotifyCallback, PollingView, PollTask, check_mode, require_success, to_jsonable


logger = logging.getLogger(__name__)


def log_rows(logs: List[LogEntry], exchange: str) -> List[Dict[str, Any]]:
    rows = []
    for entry in logs:
        tone, bold = log_tone(entry.message, exchange)
        rows.append(
            {
                "id": entry.id,
                "level": entry.level,
                "message": entry.message,
                "created_at": entry.created_at,
                "tone": tone,
                "bold": bold,
            }
        )
    return rows


class SpotDashboard(PollingView):
    """Spot (Upbit) dashboard. Both modes are polled every cycle."""

    name = "spot"

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
        self.status: Dict[str, Optional[Dict[str, Any]]] = {m: None for m in MODES}
        self.whitelist: Dict[str, List[Dict[str, Any]]] = {m: [] for m in MODES}
        self.whitelist_updated_at: Optional[str] = None
        self.portfolio: Dict[str, Optional[Dict[str, Any]]] = {m: None for m in MODES}
        self.logs: Dict[str, List[LogEntry]] = {m: [] for m in MODES}
        self.returns: Dict[str, Optional[Dict[str, Any]]] = {m: None for m in MODES}

    def poll_tasks(self) -> List[PollTask]:
        c = self._client
        tasks: List[PollTask] = []
        for mode in MODES:
            tasks.extend(
                [
                    PollTask(f"status.{mode}", lambda m=mode: c.get_bot_status(m), lambda d, m=mode: self.status.__setitem__(m, d)),
                    PollTask(f"whitelist.{mode}", lambda m=mode: c.get_whitelist(m), lambda d, m=mode: self._apply_whitelist(m, d)),
                    PollTask(f"portfolio.{mode}", lambda m=mode: c.get_portfolio(m), lambda d, m=mode: self.portfolio.__setitem__(m, d)),
                    PollTask(
                        f"logs.{mode}",
                        lambda m=mode: c.get_recent_logs(self.log_limit, m),
                        lambda d, m=mode: self.logs.__setitem__(m, list(d)),
                    ),
                    PollTask(
                        f"returns.{mode}",
                        lambda m=mode: c.get_period_returns(m, self.period_days),
                        lambda d, m=mode: self.returns.__setitem__(m, d),
                    ),
                ]
            )
        return tasks

    def _apply_whitelist(self, mode: str, data: Dict[str, Any], track_updated: bool = False) -> None:
        self.whitelist[mode] = [dict(coin) for coin in data["coins"]]
        if mode == "simulation" or track_updated:
            self.whitelist_updated_at = data.get("updated_at")

    async def switch_mode(self, mode: str) -> None:
        check_mode(mode)
        # Holding markers belong to the previous tab until the new list arrives.
        self.whitelist[mode] = [dict(coin, status="watching") for coin in self.whitelist[mode]]
        self.active_mode = mode
        resp = await self._client.get_whitelist(mode)
        if resp.ok and resp.data:
            self._apply_whitelist(mode, resp.data, track_updated=True)
        elif resp.error:
            self.errors[f"whitelist.{mode}"] = resp.error

    def merge_logs(self, entries: List[LogEntry]) -> None:
        """Fold pushed log entries into the per-mode tails, newest first."""
        for mode in MODES:
            fresh = [e for e in entries if (e.mode or self.active_mode) == mode]
            if not fresh:
                continue
            seen = {e.id for e in fresh}
            merged = fresh + [e for e in self.logs[mode] if e.id not in seen]
            merged.sort(key=lambda e: e.id, reverse=True)
            self.logs[mode] = merged[: self.log_limit]

    async def set_period_days(self, days: int) -> None:
        if days <= 0:
            raise ValueError("period must be at least one day")
        self.period_days = days
        await self.refresh()

    @property
    def running(self) -> bool:
        status = self.status.get(self.active_mode) or {}
        return bool(status.get("is_running"))

    async def toggle_bot(self, running: bool) -> Optional[ApiResponse]:
        mode = self.active_mode
        if running:
            return await self.run_command("봇 시작", lambda: self._client.start_bot(mode))
        return await self.run_command("봇 정지", lambda: self._client.stop_bot(mode))

    async def panic_sell(self) -> Optional[ApiResponse]:
        mode = self.active_mode
        return await self.run_command(
            "긴급 매도",
            lambda: self._client.panic_sell(mode),
            confirm_message="보유 중인 모든 코인을 시장가로 매도합니다. 계속할까요?",
        )

    async def sell_position(self, market: str) -> Optional[ApiResponse]:
        mode = self.active_mode

        async def command() -> ApiResponse:
            return require_success(await self._client.sell_position(market, mode), "청산에 실패했습니다")

        return await self.run_command(
            "청산",
            command,
            confirm_message=f"{format_coin_name(market, SPOT)} 포지션을 청산할까요?",
        )

    def snapshot(self) -> Dict[str, Any]:
        out = super().snapshot()
        mode = self.active_mode
        out.update(
            {
                "exchange": SPOT,
                "active_mode": mode,
                "period_days": self.period_days,
                "running": self.running,
                "status": self.status,
                "whitelist": self.whitelist[mode],
                "whitelist_updated_at": self.whitelist_updated_at,
                "portfolio": to_jsonable(self.portfolio[mode]),
                "logs": log_rows(self.logs[mode], SPOT),
                "returns": self.returns,
            }
        )
        return out
