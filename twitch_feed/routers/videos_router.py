"""VOD feed API routes"""

import json
import logging

from fastapi import APIRouter, Depends, Query

from twitch_feed.core.dependencies import get_feed_service, require_session
from twitch_feed.core.errors import BadRequestError
from twitch_feed.models.session import SessionContext
from twitch_feed.services import FeedService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])


def parse_cursor_map(raw: str | None) -> dict[str, str] | None:
    """Decode the JSON cursor map sent back by the UI.

    Anything that is not a JSON object of strings is ignored (fresh query).
    """
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed video cursor")
        return None
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        logger.warning("Ignoring video cursor that is not a string map")
        return None
    return value


@router.get("")
async def get_videos(
    user_id: str | None = Query(None, alias="userId"),
    login: str | None = None,
    cursor: str | None = None,
    limit: int = Query(25, ge=1, le=100),
    session: SessionContext = Depends(require_session),
    feed: FeedService = Depends(get_feed_service),
) -> dict:
    """Merged VODs of one or more channels, newest first.

    ``pagination`` maps batch keys to upstream cursors; send it back as
    ``cursor`` (JSON) to get the next page.
    """
    user_ids = [uid.strip() for uid in (user_id or "").split(",") if uid.strip()]
    if not user_ids and not login:
        raise BadRequestError("userId or login is required")

    return await feed.get_videos(
        session,
        user_ids=user_ids or None,
        login=login,
        cursors=parse_cursor_map(cursor),
        limit=limit,
    )
