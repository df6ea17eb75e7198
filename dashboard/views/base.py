from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..api.client import ApiResponse, BackendClient, maybe_await


logger = logging.getLogger(__name__)

MODES = ("simulation", "real")

NotifyCallback = Callable[[str], Any]
ConfirmCallback = Callable[[str], Any]
Command = Callable[[], Awaitable[ApiResponse]]


def check_mode(mode: str) -> str:
    if mode not in MODES:
        raise ValueError(f"unknown trading mode: {mode}")
    return mode


def to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def require_success(resp: ApiResponse, fallback: str) -> ApiResponse:
    """Treat a 2xx body of ``{"success": false}`` as a failed command."""
    if resp.ok and isinstance(resp.data, dict) and resp.data.get("success") is False:
        return ApiResponse(data=resp.data, error=str(resp.data.get("message") or fallback), status=resp.status)
    return resp


@dataclass(slots=True)
class PollTask:
    name: str
    fetch: Callable[[], Awaitable[ApiResponse]]
    apply: Callable[[Any], None]


class PollingView:
    """Base for views that re-fetch a fixed set of endpoints on a timer.

    Each cycle fans out every ``PollTask`` concurrently and applies results
    one by one, so a failing endpoint only leaves its own slot stale. Cycles
    carry a generation number. A cycle that lands after a newer one was
    already applied, or after ``close()``, applies nothing; a slow cycle that
    was merely started before a newer one still applies.
    """

    name = "view"

    def __init__(
        self,
        client: BackendClient,
        interval_s: Optional[float] = 10.0,
        notify: Optional[NotifyCallback] = None,
        confirm: Optional[ConfirmCallback] = None,
    ) -> None:
        self._client = client
        self._interval_s = interval_s
        self._notify = notify
        self._confirm = confirm
        self._generation = 0
        self._applied_generation = 0
        self._closed = False
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.errors: Dict[str, str] = {}
        self.loading = True
        self.last_refreshed: Optional[float] = None

    @property
    def client(self) -> BackendClient:
        return self._client

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def generation(self) -> int:
        return self._generation

    def discard_inflight(self) -> None:
        """Drop every cycle already started, e.g. after its inputs changed."""
        self._applied_generation = self._generation

    def poll_tasks(self) -> List[PollTask]:
        raise NotImplementedError

    def start(self) -> None:
        if self._ticker is None and not self._closed:
            self._ticker = asyncio.create_task(self._tick())

    def close(self) -> None:
        # In-flight fetches keep running; their results are discarded.
        self._closed = True
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self) -> None:
        while not self._closed:
            self._spawn_refresh()
            if self._interval_s is None:
                return
            await asyncio.sleep(self._interval_s)

    def _spawn_refresh(self) -> None:
        task = asyncio.create_task(self.refresh())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def refresh(self) -> bool:
        """Run one poll cycle. Returns False when its results were discarded."""
        if self._closed:
            return False
        self._generation += 1
        generation = self._generation
        tasks = self.poll_tasks()
        results = await asyncio.gather(*(t.fetch() for t in tasks), return_exceptions=True)

        if self._closed or generation <= self._applied_generation:
            logger.debug(
                "%s: dropping poll cycle %d (applied %d)", self.name, generation, self._applied_generation
            )
            return False

        self._applied_generation = generation
        for task, result in zip(tasks, results):
            if isinstance(result, BaseException):
                logger.warning("%s: %s fetch raised %r", self.name, task.name, result)
                self.errors[task.name] = str(result) or result.__class__.__name__
                continue
            if result.error:
                self.errors[task.name] = result.error
                continue
            try:
                task.apply(result.data)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("%s: could not apply %s: %r", self.name, task.name, exc)
                self.errors[task.name] = repr(exc)
                continue
            self.errors.pop(task.name, None)

        self.loading = False
        self.last_refreshed = time.time()
        return True

    async def _alert(self, message: str) -> None:
        logger.warning("%s: %s", self.name, message)
        if self._notify is None:
            return
        try:
            await maybe_await(self._notify(message))
        except Exception:
            logger.exception("%s: notify callback failed", self.name)

    async def run_command(
        self,
        description: str,
        command: Command,
        confirm_message: Optional[str] = None,
    ) -> Optional[ApiResponse]:
        """Confirm (if asked), run ``command``, then re-poll whatever happened.

        Returns None when the confirmation was declined.
        """
        if confirm_message is not None and self._confirm is not None:
            if not await maybe_await(self._confirm(confirm_message)):
                return None
        try:
            resp = await command()
            if resp.error:
                await self._alert(f"{description} 실패: {resp.error}")
        finally:
            await self.refresh()
        return resp

    def snapshot(self) -> Dict[str, Any]:
        return {
            "view": self.name,
            "loading": self.loading,
            "generation": self._generation,
            "last_refreshed": self.last_refreshed,
            "errors": dict(self.errors),
        }
