"""Dependency injection utilities for FastAPI"""

import logging

from fastapi import Cookie, Depends

from twitch_feed.core.config import get_settings
from twitch_feed.core.database import get_database_manager
from twitch_feed.core.errors import AuthenticationError
from twitch_feed.models.session import SessionContext
from twitch_feed.services import (
    AuthService,
    FeedService,
    MemorySessionStore,
    PostgresSessionStore,
    SessionStore,
    TokenManager,
    TwitchAPIClient,
    VideoAggregator,
)
from twitch_feed.shared.cache import AsyncTTLCache

logger = logging.getLogger(__name__)

SESSION_COOKIE = "auth_token"


# ============================================
# Service Dependencies
# ============================================


def get_auth_service() -> AuthService:
    """Get AuthService instance (dependency injection)"""
    settings = get_settings()
    return AuthService(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expire_days=settings.session_max_age_days,
    )


_twitch_api: TwitchAPIClient | None = None
_cache: AsyncTTLCache | None = None
_session_store: SessionStore | None = None
_token_manager: TokenManager | None = None


def get_twitch_api() -> TwitchAPIClient:
    """Get shared TwitchAPIClient singleton (connection reuse)."""
    global _twitch_api
    if _twitch_api is None:
        settings = get_settings()
        _twitch_api = TwitchAPIClient(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.oauth_redirect_uri,
            timeout=settings.request_timeout,
        )
    return _twitch_api


async def close_twitch_api() -> None:
    """Close the shared TwitchAPIClient. Call on app shutdown."""
    global _twitch_api
    if _twitch_api is not None:
        await _twitch_api.close()
        _twitch_api = None


def get_cache() -> AsyncTTLCache:
    """Get the process-wide response cache."""
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = AsyncTTLCache(maxsize=settings.cache_maxsize)
    return _cache


def get_session_store() -> SessionStore:
    """Get the configured session store (memory or postgres)."""
    global _session_store
    if _session_store is None:
        settings = get_settings()
        if settings.session_backend == "postgres":
            db_manager = get_database_manager()
            if db_manager is None:
                raise RuntimeError("Postgres session backend selected but database not initialized")
            _session_store = PostgresSessionStore(
                db_manager.pool, max_age_seconds=settings.session_max_age_seconds
            )
        else:
            _session_store = MemorySessionStore(max_age_seconds=settings.session_max_age_seconds)
    return _session_store


def get_token_manager(
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
    session_store: SessionStore = Depends(get_session_store),
) -> TokenManager:
    """Get shared TokenManager (its refresh locks must outlive a request)."""
    global _token_manager
    if _token_manager is None:
        _token_manager = TokenManager(twitch_api, session_store)
    return _token_manager


def get_feed_service(
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
    token_manager: TokenManager = Depends(get_token_manager),
    cache: AsyncTTLCache = Depends(get_cache),
) -> FeedService:
    """Get FeedService instance (dependency injection)"""
    settings = get_settings()
    return FeedService(
        twitch_api=twitch_api,
        token_manager=token_manager,
        cache=cache,
        aggregator=VideoAggregator(twitch_api, batch_size=settings.video_batch_size),
        settings=settings,
    )


def reset_dependencies() -> None:
    """Drop cached singletons and settings (tests and app restarts)."""
    global _twitch_api, _cache, _session_store, _token_manager
    _twitch_api = None
    _cache = None
    _session_store = None
    _token_manager = None
    get_settings.cache_clear()


# ============================================
# Authentication Dependencies
# ============================================


def get_session_id(auth_token: str | None = Cookie(None)) -> str | None:
    """Return the session id from the signed cookie, or None"""
    if not auth_token:
        return None
    payload = get_auth_service().verify_token(auth_token)
    if not payload:
        return None
    return str(payload["sub"])


async def require_session(
    session_id: str | None = Depends(get_session_id),
    session_store: SessionStore = Depends(get_session_store),
) -> SessionContext:
    """Require an authenticated session and return its context"""
    if not session_id:
        logger.warning("No valid session cookie provided")
        raise AuthenticationError("Not logged in")

    data = await session_store.get(session_id)
    if data is None:
        logger.warning("Session cookie points at an unknown session")
        raise AuthenticationError("Session expired")

    return SessionContext(session_id=session_id, data=data)
