from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .api.client import BackendClient
from .api.logstream import LogStream, LogStreamError, open_log_stream
from .chart.modal import ChartModal
from .chart.mpl import MplRenderer
from .config import Settings
from .models import LogEntry
from .session import SessionProvider, SqliteSession
from .views.auth import AuthService
from .views.derivatives import DerivativesDashboard
from .views.history import HistoryView
from .views.settings import SettingsView
from .views.spot import SpotDashboard


logger = logging.getLogger(__name__)


class DashboardRuntime:
    """Owns the backend client, the session store and every live view.

    Polling views and the log stream only run while a session is present;
    logout or an expired token tears them down and fresh instances are built
    on the next login.
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[SessionProvider] = None,
        client: Optional[BackendClient] = None,
    ) -> None:
        self.settings = settings
        self.session = session or SqliteSession(settings.storage.sqlite_path)
        self.client = client or BackendClient(
            settings.backend.base_url,
            self.session,
            timeout=settings.backend.timeout,
            on_session_expired=self._on_session_expired,
        )
        self.auth = AuthService(self.client)
        self.alerts: Deque[Dict[str, Any]] = deque(maxlen=100)
        self.spot: Optional[SpotDashboard] = None
        self.derivatives: Optional[DerivativesDashboard] = None
        self.history: Optional[HistoryView] = None
        self._log_stream: Optional[LogStream] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def _notify(self, message: str) -> None:
        self.alerts.append({"ts": int(time.time() * 1000), "message": message})

    def _make_views(self) -> None:
        poll = self.settings.poll
        self.spot = SpotDashboard(
            self.client,
            interval_s=poll.interval_s,
            log_limit=poll.log_limit,
            period_days=poll.period_days,
            notify=self._notify,
        )
        self.derivatives = DerivativesDashboard(
            self.client,
            interval_s=poll.interval_s,
            log_limit=poll.log_limit,
            period_days=poll.period_days,
            notify=self._notify,
        )
        self.history = HistoryView(self.client, page_size=poll.history_page_size)

    def _on_logs(self, entries: List[LogEntry]) -> None:
        if self.spot is not None:
            self.spot.merge_logs(entries)

    def _on_log_error(self, error: Exception) -> None:
        if isinstance(error, LogStreamError):
            logger.info("Log stream: %s", error)

    async def start(self) -> None:
        connect = getattr(self.session, "connect", None)
        if connect is not None:
            await connect()
        if await self.auth.restore():
            await self.activate()
        logger.info("Dashboard runtime started (backend=%s)", self.client.base_url)

    async def activate(self) -> None:
        if self._active:
            return
        self._make_views()
        self.spot.start()
        self.derivatives.start()
        backend = self.settings.backend
        self._log_stream = open_log_stream(
            self.client,
            self._on_logs,
            on_error=self._on_log_error,
            path=backend.log_stream_path,
            retry_ms=backend.log_stream_retry_ms,
        )
        self._active = True
        logger.info("Dashboard views activated")

    def deactivate(self) -> None:
        if not self._active:
            return
        self._active = False
        for view in (self.spot, self.derivatives):
            if view is not None:
                view.close()
        if self._log_stream is not None:
            self._log_stream.close()
            self._log_stream = None
        logger.info("Dashboard views deactivated")

    def _on_session_expired(self) -> None:
        self._notify("세션이 만료되었습니다. 다시 로그인해주세요.")
        self.deactivate()

    async def stop(self) -> None:
        stream = self._log_stream
        self.deactivate()
        if stream is not None:
            await stream.wait_closed()
        await self.client.aclose()
        close = getattr(self.session, "close", None)
        if close is not None:
            await close()
        logger.info("Dashboard runtime stopped")

    def chart_modal(self) -> ChartModal:
        chart = self.settings.chart
        renderer = MplRenderer(dpi=chart.dpi, timezone=self.settings.app.timezone)
        return ChartModal(
            self.client,
            renderer,
            width=chart.width_px,
            main_height=chart.main_height_px,
            rsi_height=chart.rsi_height_px,
        )

    def settings_view(self, exchange: str) -> SettingsView:
        return SettingsView(self.client, exchange=exchange)

    def recent_alerts(self, limit: int = 20) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        return list(self.alerts)[-limit:]
