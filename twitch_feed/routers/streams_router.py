"""Live stream API routes"""

import logging

from fastapi import APIRouter, Depends

from twitch_feed.core.dependencies import get_feed_service, require_session
from twitch_feed.core.errors import BadRequestError
from twitch_feed.models.session import SessionContext
from twitch_feed.services import FeedService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/streams", tags=["streams"])


@router.get("")
async def get_followed_streams(
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> list[dict]:
    """Followed channels that are live right now"""
    return await feed.get_live_streams(session)


@router.get("/channel")
async def get_channel_stream(
    login: str | None = None,
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> dict:
    """Live stream of a single channel, or ``{"stream": null}`` when offline"""
    if not login:
        raise BadRequestError("login is required")
    return await feed.get_channel_stream(session, login)
