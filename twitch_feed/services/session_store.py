"""Session storage backends.

A session id (carried in the signed ``auth_token`` cookie) maps to the
user's Twitch token pair and user snapshot. Handlers never read the token
pair from the cookie itself.
"""

import logging
from abc import ABC, abstractmethod

import asyncpg
from cachetools import TTLCache  # type: ignore[import-untyped]

from twitch_feed.models.session import SessionData

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Key-value store for sessions, keyed by session id."""

    @abstractmethod
    async def get(self, session_id: str) -> SessionData | None: ...

    @abstractmethod
    async def set(self, session_id: str, data: SessionData) -> None: ...

    @abstractmethod
    async def delete(self, session_id: str) -> None: ...


class MemorySessionStore(SessionStore):
    """Process-local store; sessions are lost on restart."""

    def __init__(self, max_age_seconds: float, maxsize: int = 10_000):
        self._sessions: TTLCache = TTLCache(maxsize=maxsize, ttl=max_age_seconds)

    async def get(self, session_id: str) -> SessionData | None:
        return self._sessions.get(session_id)

    async def set(self, session_id: str, data: SessionData) -> None:
        self._sessions[session_id] = data

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class PostgresSessionStore(SessionStore):
    """Sessions persisted as JSON rows in PostgreSQL."""

    def __init__(self, pool: asyncpg.Pool, max_age_seconds: int):
        self.pool = pool
        self.max_age_seconds = max_age_seconds

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS feed_sessions (
                    session_id TEXT PRIMARY KEY,
                    data       TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )

    async def get(self, session_id: str) -> SessionData | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM feed_sessions "
                "WHERE session_id = $1 AND created_at > NOW() - make_interval(secs => $2)",
                session_id,
                float(self.max_age_seconds),
            )
        if not row:
            return None
        return SessionData.model_validate_json(row["data"])

    async def set(self, session_id: str, data: SessionData) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO feed_sessions (session_id, data)
                VALUES ($1, $2)
                ON CONFLICT (session_id) DO UPDATE SET
                    data       = EXCLUDED.data,
                    updated_at = NOW()
                """,
                session_id,
                data.model_dump_json(),
            )

    async def delete(self, session_id: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("DELETE FROM feed_sessions WHERE session_id = $1", session_id)
