"""User lookup API routes"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from twitch_feed.core.dependencies import get_feed_service, require_session
from twitch_feed.core.errors import BadRequestError
from twitch_feed.models.session import SessionContext
from twitch_feed.services import FeedService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["user"])


class UserInfoResponse(BaseModel):
    id: str
    login: str
    display_name: str
    profile_image_url: str


@router.get("", response_model=UserInfoResponse)
async def get_user(
    login: str | None = None,
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> UserInfoResponse:
    """Look up a Twitch user by login"""
    if not login:
        raise BadRequestError("login is required")
    return UserInfoResponse(**await feed.get_user(session, login))
