"""Search API routes"""

import logging

from fastapi import APIRouter, Depends, Query

from twitch_feed.core.dependencies import get_feed_service, require_session
from twitch_feed.core.errors import BadRequestError
from twitch_feed.models.session import SessionContext
from twitch_feed.services import FeedService
from twitch_feed.services.feed_service import SEARCH_TYPES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("")
async def search(
    query: str | None = None,
    search_type: str = Query("channels", alias="type"),
    cursor: str | None = None,
    limit: int = Query(25, ge=1, le=100),
    live_only: bool = Query(False, alias="liveOnly"),
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> dict:
    """Search channels or categories"""
    if not query:
        raise BadRequestError("query is required")
    if search_type not in SEARCH_TYPES:
        raise BadRequestError(f"type must be one of: {', '.join(SEARCH_TYPES)}")

    return await feed.search(
        session,
        query,
        search_type=search_type,
        cursor=cursor or None,
        limit=limit,
        live_only=live_only,
    )


@router.get("/streams")
async def get_streams_for_users(
    user_ids: str | None = Query(None, alias="userIds"),
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> list[dict]:
    """Live streams for an explicit list of user ids"""
    ids = [uid.strip() for uid in (user_ids or "").split(",") if uid.strip()]
    if not ids:
        raise BadRequestError("userIds is required")
    return await feed.get_streams_for_users(session, ids)
