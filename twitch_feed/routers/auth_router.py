"""Authentication API routes"""

import logging
import secrets
import uuid

from fastapi import APIRouter, Cookie, Depends, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from twitch_feed.core.config import Settings, get_settings
from twitch_feed.core.dependencies import (
    SESSION_COOKIE,
    get_auth_service,
    get_feed_service,
    get_session_id,
    get_session_store,
    get_token_manager,
    get_twitch_api,
)
from twitch_feed.core.errors import TwitchAPIError
from twitch_feed.models.session import SessionData
from twitch_feed.services import (
    AuthService,
    FeedService,
    SessionStore,
    TokenManager,
    TwitchAPIClient,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])

STATE_COOKIE = "twitch_oauth_state"
STATE_MAX_AGE = 10 * 60


# ============================================
# Response Models
# ============================================


class SessionStateResponse(BaseModel):
    isAuthenticated: bool
    user: dict | None


class LogoutResponse(BaseModel):
    message: str


# ============================================
# Endpoints
# ============================================


@router.get("/login")
async def login(
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Redirect to Twitch authorization with a fresh CSRF state"""
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(url=twitch_api.generate_oauth_url(state))
    response.set_cookie(
        key=STATE_COOKIE,
        value=state,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=STATE_MAX_AGE,
    )
    return response


@router.get("/callback")
async def twitch_oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    twitch_oauth_state: str | None = Cookie(None),
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
    auth_service: AuthService = Depends(get_auth_service),
    session_store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Handle Twitch OAuth callback"""
    error_redirect = f"{settings.frontend_url}/"

    def fail(reason: str) -> RedirectResponse:
        response = RedirectResponse(url=f"{error_redirect}?error={reason}")
        response.delete_cookie(STATE_COOKIE, path="/")
        return response

    if error:
        logger.error(f"OAuth error from Twitch: {error}")
        return fail(error)

    if not code or not state:
        logger.error("Missing code or state in OAuth callback")
        return fail("missing_params")

    if not twitch_oauth_state or not secrets.compare_digest(twitch_oauth_state, state):
        logger.error("OAuth state mismatch")
        return fail("state_mismatch")

    tokens = await twitch_api.exchange_code_for_token(code)
    if tokens is None:
        logger.error("Failed to exchange code for tokens")
        return fail("token_exchange_failed")

    try:
        user = await twitch_api.get_current_user(tokens.access_token)
    except TwitchAPIError as e:
        logger.error(f"User lookup failed after token exchange: {e}")
        user = None
    if user is None:
        logger.error("Failed to get user info after token exchange")
        return fail("user_fetch_failed")

    session_id = uuid.uuid4().hex
    await session_store.set(session_id, SessionData(tokens=tokens, user=user))

    response = RedirectResponse(url=f"{settings.frontend_url}/")
    response.delete_cookie(STATE_COOKIE, path="/")
    response.set_cookie(
        key=SESSION_COOKIE,
        value=auth_service.create_session_token(session_id, user.id),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.session_max_age_seconds,
    )

    logger.info(f"User logged in: {user.login} ({user.id})")
    return response


@router.get("/session", response_model=SessionStateResponse)
async def get_session_state(
    session_id: str | None = Depends(get_session_id),
    feed: FeedService = Depends(get_feed_service),
) -> dict:
    """Report whether the caller has a usable Twitch session"""
    return await feed.get_session_state(session_id)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    session_id: str | None = Depends(get_session_id),
    session_store: SessionStore = Depends(get_session_store),
    token_manager: TokenManager = Depends(get_token_manager),
    feed: FeedService = Depends(get_feed_service),
) -> LogoutResponse:
    """Logout current user by dropping the session and clearing the cookie"""
    if session_id:
        data = await session_store.get(session_id)
        await session_store.delete(session_id)
        token_manager.forget(session_id)
        if data is not None:
            feed.forget_user(data.user.id)
            logger.info(f"User logged out: {data.user.login} ({data.user.id})")

    response.delete_cookie(key=SESSION_COOKIE, path="/", httponly=True, samesite="lax")
    return LogoutResponse(message="Logged out successfully")
