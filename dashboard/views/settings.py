from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..api.client import BackendClient
from ..formatting import DERIVATIVES, SPOT


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True, slots=True)
class Message:
    kind: str  # success/error
    text: str


def _success(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("success"))


class SettingsView:
    """Account, exchange key, Telegram and strategy settings for one exchange."""

    def __init__(self, client: BackendClient, exchange: str = SPOT) -> None:
        self._client = client
        self.exchange = exchange if exchange in (SPOT, DERIVATIVES) else SPOT
        self.settings: Optional[Dict[str, Any]] = None
        self.bybit_settings: Optional[Dict[str, Any]] = None
        self.strategy_settings: Dict[str, Dict[str, Any]] = {}
        self.message: Optional[Message] = None
        self.loading = True

    def _set(self, kind: str, text: str) -> Message:
        self.message = Message(kind, text)
        if kind == "error":
            logger.warning("settings: %s", text)
        return self.message

    async def load(self) -> None:
        self.loading = True
        resp = await self._client.get_settings(self.exchange)
        if resp.ok and resp.data:
            self.settings = resp.data
            if self.exchange == SPOT and resp.data.get("strategy_settings"):
                self.strategy_settings = dict(resp.data["strategy_settings"])
        elif resp.error:
            self._set("error", resp.error)
        if self.exchange == DERIVATIVES:
            await self._load_bybit()
        self.loading = False

    async def _load_bybit(self) -> None:
        resp = await self._client.get_bybit_settings()
        if resp.ok and resp.data:
            self.bybit_settings = resp.data
            if resp.data.get("strategy_settings"):
                self.strategy_settings = dict(resp.data["strategy_settings"])

    async def _reload_spot(self) -> None:
        resp = await self._client.get_settings()
        if resp.ok and resp.data:
            self.settings = resp.data

    async def save_upbit_keys(self, access_key: str, secret_key: str) -> Message:
        if not access_key or not secret_key:
            return self._set("error", "API Key와 Secret Key를 모두 입력해주세요")
        resp = await self._client.update_settings({"upbit_access_key": access_key, "upbit_secret_key": secret_key})
        if not _success(resp.data):
            return self._set("error", resp.error or "저장 실패")
        await self._reload_spot()
        return self._set("success", "Upbit API 설정이 저장되었습니다")

    async def validate_upbit(self) -> Message:
        resp = await self._client.validate_upbit()
        data = resp.data if isinstance(resp.data, dict) else {}
        if data.get("valid"):
            balance = round(float(data.get("krw_balance") or 0))
            return self._set("success", f"API 키 유효! 잔고: ₩{balance:,}")
        return self._set("error", data.get("message") or resp.error or "API 키 검증 실패")

    async def save_bybit_keys(self, api_key: str, api_secret: str) -> Message:
        if not api_key or not api_secret:
            return self._set("error", "API Key와 Secret Key를 모두 입력해주세요")
        resp = await self._client.update_bybit_api_keys(api_key, api_secret)
        if not _success(resp.data):
            data = resp.data if isinstance(resp.data, dict) else {}
            return self._set("error", data.get("message") or resp.error or "저장 실패")
        await self._load_bybit()
        return self._set("success", "Bybit API 설정이 저장되었습니다")

    async def save_telegram(self, chat_id: str, enabled: bool, token: Optional[str] = None) -> Message:
        updates: Dict[str, Any] = {"telegram_chat_id": chat_id, "telegram_enabled": enabled}
        if token:
            updates["telegram_token"] = token
        resp = await self._client.update_settings(updates)
        if not _success(resp.data):
            return self._set("error", resp.error or "저장 실패")
        await self._reload_spot()
        return self._set("success", "텔레그램 설정이 저장되었습니다")

    async def test_telegram(self) -> Message:
        resp = await self._client.test_telegram()
        if _success(resp.data):
            return self._set("success", "테스트 메시지를 발송했습니다")
        data = resp.data if isinstance(resp.data, dict) else {}
        return self._set("error", data.get("message") or resp.error or "발송 실패")

    async def change_password(self, current: str, new: str, confirm: str) -> Message:
        if not current or not new:
            return self._set("error", "현재 비밀번호와 새 비밀번호를 입력해주세요")
        if len(new) < MIN_PASSWORD_LENGTH:
            return self._set("error", f"새 비밀번호는 최소 {MIN_PASSWORD_LENGTH}자 이상이어야 합니다")
        if new != confirm:
            return self._set("error", "새 비밀번호가 일치하지 않습니다")
        resp = await self._client.change_password(current, new)
        if not _success(resp.data):
            return self._set("error", resp.error or "비밀번호 변경 실패")
        return self._set("success", "비밀번호가 변경되었습니다")

    def set_strategy_enabled(self, strategy_id: str, enabled: bool) -> None:
        entry = dict(self.strategy_settings.get(strategy_id) or {})
        entry["enabled"] = enabled
        self.strategy_settings[strategy_id] = entry

    async def save_strategies(self) -> Message:
        if self.exchange == DERIVATIVES:
            resp = await self._client.update_bybit_strategy_settings(self.strategy_settings)
        else:
            resp = await self._client.update_settings({"strategy_settings": self.strategy_settings}, self.exchange)
        if not _success(resp.data):
            return self._set("error", resp.error or "전략 설정 저장 실패")
        return self._set("success", "전략 설정이 저장되었습니다")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "view": "settings",
            "exchange": self.exchange,
            "loading": self.loading,
            "settings": self.settings,
            "bybit_settings": self.bybit_settings,
            "strategy_settings": self.strategy_settings,
            "message": {"kind": self.message.kind, "text": self.message.text} if self.message else None,
        }
