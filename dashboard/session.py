from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import aiosqlite


logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
EXCHANGE_KEY = "selectedExchange"


@runtime_checkable
class SessionProvider(Protocol):
    """Process-wide session state read by every API call."""

    async def get_token(self) -> Optional[str]: ...

    async def get_user(self) -> Optional[Dict[str, Any]]: ...

    async def set_session(self, token: str, user: Dict[str, Any]) -> None: ...

    async def clear_session(self) -> None: ...


class MemorySession:
    def __init__(self, token: Optional[str] = None, user: Optional[Dict[str, Any]] = None) -> None:
        self._token = token
        self._user = user
        self._prefs: Dict[str, str] = {}

    async def get_token(self) -> Optional[str]:
        return self._token

    async def get_user(self) -> Optional[Dict[str, Any]]:
        return self._user

    async def set_session(self, token: str, user: Dict[str, Any]) -> None:
        self._token, self._user = token, dict(user)

    async def clear_session(self) -> None:
        self._token, self._user = None, None

    async def get_preference(self, key: str) -> Optional[str]:
        return self._prefs.get(key)

    async def set_preference(self, key: str, value: str) -> None:
        self._prefs[key] = value


class SqliteSession:
    """Client-side key/value state: bearer token, user profile, exchange preference."""

    def __init__(self, sqlite_path: str) -> None:
        self._sqlite_path = sqlite_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        if self._conn is not None:
            return
        if self._sqlite_path != ":memory:":
            Path(self._sqlite_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._sqlite_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute(
            "CREATE TABLE IF NOT EXISTS client_state ("
            " key TEXT PRIMARY KEY,"
            " value TEXT NOT NULL)"
        )
        await self._conn.commit()
        logger.info("Session store connected: %s", self._sqlite_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("Session store closed")

    async def _get(self, key: str) -> Optional[str]:
        await self.connect()
        async with self._conn.execute("SELECT value FROM client_state WHERE key=?", (key,)) as cursor:
            row = await cursor.fetchone()
        return row["value"] if row else None

    async def get_token(self) -> Optional[str]:
        return await self._get(TOKEN_KEY)

    async def get_user(self) -> Optional[Dict[str, Any]]:
        raw = await self._get(USER_KEY)
        if raw is None:
            return None
        try:
            user = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored user profile is not valid JSON; ignoring")
            return None
        return user if isinstance(user, dict) else None

    async def set_session(self, token: str, user: Dict[str, Any]) -> None:
        await self.connect()
        await self._conn.executemany(
            "INSERT INTO client_state (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            [(TOKEN_KEY, token), (USER_KEY, json.dumps(user, ensure_ascii=False))],
        )
        await self._conn.commit()

    async def clear_session(self) -> None:
        await self.connect()
        await self._conn.execute(
            "DELETE FROM client_state WHERE key IN (?, ?)", (TOKEN_KEY, USER_KEY)
        )
        await self._conn.commit()

    async def get_preference(self, key: str) -> Optional[str]:
        return await self._get(key)

    async def set_preference(self, key: str, value: str) -> None:
        await self.connect()
        await self._conn.execute(
            "INSERT INTO client_state (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
        await self._conn.commit()
