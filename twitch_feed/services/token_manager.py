"""User access token lifecycle.

Validates the stored access token on use and transparently refreshes it
once on a 401. The refreshed pair is written to the session store before
the new token is handed back, so later requests see it.
"""

import asyncio
import logging

from twitch_feed.core.errors import TwitchAPIError, TwitchUnauthorizedError
from twitch_feed.models.session import SessionData
from twitch_feed.models.twitch import TokenPair

from .session_store import SessionStore
from .twitch_api import TwitchAPIClient

logger = logging.getLogger(__name__)


class TokenManager:
    # Idle refresh locks beyond this count are pruned
    MAX_IDLE_LOCKS = 1024

    def __init__(self, twitch_api: TwitchAPIClient, session_store: SessionStore):
        self.twitch_api = twitch_api
        self.session_store = session_store
        self._refresh_locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._refresh_locks.get(session_id)
        if lock is None:
            lock = self._refresh_locks[session_id] = asyncio.Lock()
            if len(self._refresh_locks) > self.MAX_IDLE_LOCKS:
                for sid in list(self._refresh_locks):
                    if sid != session_id and not self._refresh_locks[sid].locked():
                        del self._refresh_locks[sid]
        return lock

    async def refresh(self, refresh_token: str) -> TokenPair | None:
        """Exchange a refresh token for a new pair. Does not retry."""
        if not refresh_token:
            return None
        return await self.twitch_api.refresh_access_token(refresh_token)

    async def _refresh_session(self, session_id: str, stale_token: str) -> SessionData | None:
        """Refresh once, unless another request already rotated *stale_token*."""
        async with self._lock_for(session_id):
            data = await self.session_store.get(session_id)
            if data is None:
                return None

            # Double-check after acquiring lock
            if data.tokens.access_token != stale_token:
                return data

            logger.info(f"Access token expired for user {data.user.id}, attempting refresh")
            pair = await self.refresh(data.tokens.refresh_token)
            if pair is None:
                logger.warning(f"Token refresh failed for user {data.user.id}")
                return None

            refreshed = data.model_copy(update={"tokens": pair})
            await self.session_store.set(session_id, refreshed)
            logger.info(f"Token refreshed for user {data.user.id}")
            return refreshed

    async def get_session(self, session_id: str) -> SessionData | None:
        """Return the session with a validated (possibly refreshed) token pair.

        Returns None when there is no session, when validation fails for any
        reason other than 401, or when the single refresh attempt fails.
        """
        data = await self.session_store.get(session_id)
        if data is None:
            return None

        try:
            user = await self.twitch_api.get_current_user(data.tokens.access_token)
        except TwitchUnauthorizedError:
            return await self._refresh_session(session_id, data.tokens.access_token)
        except TwitchAPIError as e:
            logger.warning(f"Token validation failed: {e}")
            return None

        if user is None:
            return None

        if user != data.user:
            data = data.model_copy(update={"user": user})
            await self.session_store.set(session_id, data)
        return data

    async def get_valid_access_token(self, session_id: str) -> str | None:
        data = await self.get_session(session_id)
        return data.tokens.access_token if data else None

    async def force_refresh(self, session_id: str, stale_token: str) -> str | None:
        """Refresh after a data call was rejected with 401 despite validation."""
        data = await self._refresh_session(session_id, stale_token)
        return data.tokens.access_token if data else None

    def forget(self, session_id: str) -> None:
        self._refresh_locks.pop(session_id, None)
