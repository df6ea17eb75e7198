from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, List, Optional

import httpx
from httpx_sse import SSEError, aconnect_sse

from ..models import LogEntry, log_entry_from_dict
from .client import BackendClient, maybe_await


logger = logging.getLogger(__name__)

LogsCallback = Callable[[List[LogEntry]], Any]
ErrorCallback = Callable[[Exception], Any]


class LogStreamError(Exception):
    pass


class LogStreamAuthError(LogStreamError):
    pass


class LogStream:
    """Server-push subscription to the backend's system log tail.

    Each ``logs`` event carries a JSON array of log entries. Reconnection is
    best-effort: after a failure the stream waits for the server's ``retry``
    hint (or the configured delay) and connects again until closed.
    """

    def __init__(
        self,
        client: BackendClient,
        on_logs: LogsCallback,
        on_error: Optional[ErrorCallback] = None,
        path: str = "/api/trading/logs",
        retry_ms: int = 3000,
    ) -> None:
        self._client = client
        self._on_logs = on_logs
        self._on_error = on_error
        self._path = path
        self._retry_ms = retry_ms
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> "LogStream":
        if self._task is None and not self.closed:
            self._task = asyncio.create_task(self.run())
        return self

    def close(self) -> None:
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _dispatch(self, data: str) -> None:
        try:
            entries = [log_entry_from_dict(x) for x in _load_array(data)]
        except (ValueError, TypeError, KeyError):
            logger.warning("Failed to parse log data")
            return
        try:
            await maybe_await(self._on_logs(entries))
        except Exception:
            logger.exception("Log stream handler failed")

    async def _report(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            await maybe_await(self._on_error(error))
        except Exception:
            logger.exception("Log stream error handler failed")

    async def _connect_once(self) -> None:
        headers = await self._client.auth_headers()
        async with aconnect_sse(self._client.http, "GET", self._path, headers=headers) as source:
            if source.response.status_code == 401:
                # A rejected token ends the session; no retry.
                await self._client.expire_session()
                raise LogStreamAuthError("Log stream rejected credentials")
            source.response.raise_for_status()
            logger.info("Log stream connected: %s", self._path)
            async for sse in source.aiter_sse():
                if self._stop_event.is_set():
                    break
                if sse.retry:
                    self._retry_ms = sse.retry
                if sse.event != "logs":
                    continue
                await self._dispatch(sse.data)

    async def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self._connect_once()
                error = LogStreamError("Log stream closed by server")
            except LogStreamAuthError as exc:
                logger.warning("%s; stopping", exc)
                self._stop_event.set()
                await self._report(exc)
                break
            except (httpx.HTTPError, SSEError) as exc:
                error = LogStreamError("Log stream error")
                error.__cause__ = exc

            if self._stop_event.is_set():
                break
            logger.warning("Log stream interrupted (%s); retrying in %d ms", error.__cause__ or error, self._retry_ms)
            await self._report(error)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._retry_ms / 1000.0)
            except asyncio.TimeoutError:
                pass


def _load_array(data: str) -> List[Any]:
    loaded = json.loads(data)
    if not isinstance(loaded, list):
        raise TypeError("log event payload must be a JSON array")
    return loaded


def open_log_stream(
    client: BackendClient,
    on_logs: LogsCallback,
    on_error: Optional[ErrorCallback] = None,
    path: str = "/api/trading/logs",
    retry_ms: int = 3000,
) -> LogStream:
    """Start a log stream; the caller owns it and must ``close()`` it."""
    return LogStream(client, on_logs, on_error=on_error, path=path, retry_ms=retry_ms).start()
