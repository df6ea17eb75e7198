from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..api.client import ApiResponse, BackendClient
from ..formatting import DERIVATIVES, SPOT
from ..models import UserProfile, user_from_dict
from ..session import EXCHANGE_KEY


logger = logging.getLogger(__name__)

PUBLIC_PATHS = ("/login", "/register", "/forgot-password")
LOGIN_PATH = "/login"
SELECT_EXCHANGE_PATH = "/select-exchange"
DASHBOARD_PATHS = {SPOT: "/", DERIVATIVES: "/bybit"}


def route_for(path: str, authenticated: bool) -> Optional[str]:
    """Where to redirect ``path`` for the given auth state, or None to stay."""
    public = path in PUBLIC_PATHS
    if not authenticated and not public:
        return LOGIN_PATH
    if authenticated and public:
        return SELECT_EXCHANGE_PATH
    return None


class AuthService:
    def __init__(self, client: BackendClient) -> None:
        self._client = client
        self._session = client.session
        self.verified = False

    async def is_authenticated(self) -> bool:
        return bool(await self._session.get_token())

    async def current_user(self) -> Optional[UserProfile]:
        raw = await self._session.get_user()
        if not raw:
            return None
        try:
            return user_from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Stored user profile is malformed")
            return None

    async def restore(self) -> bool:
        """Check a stored token against the backend.

        A rejected token clears the session; a transport failure keeps it.
        """
        token = await self._session.get_token()
        user = await self._session.get_user()
        if not token or not user:
            self.verified = True
            return False
        resp = await self._client.me()
        if resp.error and resp.status is not None:
            logger.info("Stored token rejected (%s); clearing session", resp.status)
            await self._session.clear_session()
        elif resp.error:
            logger.warning("Token verification failed: %s", resp.error)
        self.verified = True
        return await self.is_authenticated()

    async def _start_session(self, resp: ApiResponse, fallback: str) -> ApiResponse:
        if resp.error:
            if resp.error.startswith("HTTP "):
                return ApiResponse(data=resp.data, error=fallback, status=resp.status)
            return resp
        data = resp.data if isinstance(resp.data, dict) else {}
        token = data.get("access_token")
        user = data.get("user")
        if not token or not isinstance(user, dict):
            return ApiResponse(data=resp.data, error=fallback, status=resp.status)
        await self._session.set_session(str(token), user)
        return resp

    async def login(self, email: str, password: str) -> ApiResponse:
        return await self._start_session(await self._client.login(email, password), "로그인에 실패했습니다")

    async def register(self, email: str, password: str) -> ApiResponse:
        return await self._start_session(await self._client.register(email, password), "회원가입에 실패했습니다")

    async def logout(self) -> None:
        try:
            if await self._session.get_token():
                resp = await self._client.logout()
                if resp.error:
                    logger.warning("Logout failed: %s", resp.error)
        finally:
            await self._session.clear_session()

    async def route(self, path: str) -> Optional[str]:
        return route_for(path, await self.is_authenticated())

    async def last_exchange(self) -> Optional[str]:
        getter = getattr(self._session, "get_preference", None)
        if getter is None:
            return None
        value = await getter(EXCHANGE_KEY)
        return value if value in DASHBOARD_PATHS else None

    async def select_exchange(self, exchange: str) -> str:
        """Remember the exchange and return its dashboard path."""
        if exchange not in DASHBOARD_PATHS:
            raise ValueError(f"unknown exchange: {exchange}")
        setter = getattr(self._session, "set_preference", None)
        if setter is not None:
            await setter(EXCHANGE_KEY, exchange)
        return DASHBOARD_PATHS[exchange]

    async def snapshot(self) -> Dict[str, Any]:
        user = await self.current_user()
        return {
            "authenticated": await self.is_authenticated(),
            "verified": self.verified,
            "user": {"id": user.id, "email": user.email} if user else None,
            "exchange": await self.last_exchange(),
        }
