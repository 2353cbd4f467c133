"""Followed channel API routes"""

import logging

from fastapi import APIRouter, Depends

from twitch_feed.core.dependencies import get_feed_service, require_session
from twitch_feed.models.session import SessionContext
from twitch_feed.services import FeedService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/followed", tags=["followed"])


@router.get("")
async def get_followed_channels(
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> list[dict]:
    """Every channel the user follows, with profile images"""
    return await feed.get_followed(session)
