"""Aggregation layer behind the UI routes.

Each operation reads through the response cache, obtains a valid user token
from the TokenManager, runs its Helix calls and shapes the JSON payload.
A Helix 401 on a data call triggers one forced refresh and one retry.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from twitch_feed.core.config import Settings
from twitch_feed.core.errors import AuthenticationError, NotFoundError, TwitchUnauthorizedError
from twitch_feed.models.session import SessionContext
from twitch_feed.models.twitch import Stream, Video
from twitch_feed.shared.cache import AsyncTTLCache
from twitch_feed.utils.formatting import format_duration, format_view_count, get_thumbnail_url

from .token_manager import TokenManager
from .twitch_api import HELIX_MAX_PAGE, TwitchAPIClient
from .video_aggregator import VideoAggregator

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEARCH_TYPES = ("channels", "categories")

# Every cache key written here starts with "<prefix>:<session user id>"
CACHE_PREFIXES = (
    "followed",
    "streams",
    "channel_stream",
    "user_streams",
    "videos",
    "search",
    "user",
)


def _present_stream(stream: Stream, profile_image_url: str) -> dict[str, Any]:
    payload = stream.model_dump(mode="json")
    payload["profile_image_url"] = profile_image_url
    payload["preview_url"] = get_thumbnail_url(stream.thumbnail_url)
    return payload


def _present_video(video: Video) -> dict[str, Any]:
    payload = video.model_dump(mode="json")
    payload["preview_url"] = get_thumbnail_url(video.thumbnail_url)
    payload["view_count_label"] = format_view_count(video.view_count)
    payload["duration_label"] = format_duration(video.duration)
    return payload


class FeedService:
    def __init__(
        self,
        twitch_api: TwitchAPIClient,
        token_manager: TokenManager,
        cache: AsyncTTLCache,
        aggregator: VideoAggregator,
        settings: Settings,
    ):
        self.twitch_api = twitch_api
        self.token_manager = token_manager
        self.cache = cache
        self.aggregator = aggregator
        self.settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _with_token(
        self, session: SessionContext, call: Callable[[str], Awaitable[T]]
    ) -> T:
        token = await self.token_manager.get_valid_access_token(session.session_id)
        if not token:
            raise AuthenticationError("No access token")

        try:
            return await call(token)
        except TwitchUnauthorizedError:
            logger.info(f"Twitch rejected token mid-request for user {session.user_id}")
            token = await self.token_manager.force_refresh(session.session_id, token)
            if not token:
                raise AuthenticationError("Twitch session expired") from None
            return await call(token)

    async def _profile_images(self, token: str, user_ids: Iterable[str]) -> dict[str, str]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        users = await self.twitch_api.get_users(token, ids=ids)
        return {u.id: u.profile_image_url for u in users}

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def get_session_state(self, session_id: str | None) -> dict[str, Any]:
        if session_id:
            data = await self.token_manager.get_session(session_id)
            if data is not None:
                return {"isAuthenticated": True, "user": data.user.model_dump(mode="json")}
        return {"isAuthenticated": False, "user": None}

    # ------------------------------------------------------------------
    # Followed channels and live streams
    # ------------------------------------------------------------------

    async def get_followed(self, session: SessionContext) -> list[dict[str, Any]]:
        async def fetch(token: str) -> list[dict[str, Any]]:
            channels = []
            cursor: str | None = None
            while True:
                page, cursor = await self.twitch_api.get_followed_channels(
                    token, session.user_id, first=HELIX_MAX_PAGE, after=cursor
                )
                channels.extend(page)
                if not cursor or not page:
                    break

            images = await self._profile_images(token, (c.broadcaster_id for c in channels))
            result = []
            for channel in channels:
                payload = channel.model_dump(mode="json")
                payload["profile_image_url"] = images.get(channel.broadcaster_id, "")
                result.append(payload)
            logger.debug(f"Resolved {len(result)} followed channels for user {session.user_id}")
            return result

        return await self.cache.get_or_compute(
            f"followed:{session.user_id}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_followed,
        )

    async def get_live_streams(self, session: SessionContext) -> list[dict[str, Any]]:
        async def fetch(token: str) -> list[dict[str, Any]]:
            streams: list[Stream] = []
            cursor: str | None = None
            while True:
                page, cursor = await self.twitch_api.get_followed_streams(
                    token, session.user_id, first=HELIX_MAX_PAGE, after=cursor
                )
                streams.extend(page)
                if not cursor or not page:
                    break

            images = await self._profile_images(token, (s.user_id for s in streams))
            return [_present_stream(s, images.get(s.user_id, "")) for s in streams]

        return await self.cache.get_or_compute(
            f"streams:{session.user_id}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_streams,
        )

    async def get_channel_stream(self, session: SessionContext, login: str) -> dict[str, Any]:
        async def fetch(token: str) -> dict[str, Any]:
            user = await self.twitch_api.get_user_by_login(token, login)
            if user is None:
                return {"stream": None}
            streams = await self.twitch_api.get_streams(token, [user.id])
            if not streams:
                return {"stream": None}
            return {"stream": _present_stream(streams[0], user.profile_image_url)}

        return await self.cache.get_or_compute(
            f"channel_stream:{session.user_id}:{login.lower()}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_streams,
        )

    async def get_streams_for_users(
        self, session: SessionContext, user_ids: list[str]
    ) -> list[dict[str, Any]]:
        async def fetch(token: str) -> list[dict[str, Any]]:
            streams = await self.twitch_api.get_streams(token, user_ids)
            return [s.model_dump(mode="json") for s in streams]

        return await self.cache.get_or_compute(
            f"user_streams:{session.user_id}:{','.join(sorted(user_ids))}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_streams,
        )

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    async def get_videos(
        self,
        session: SessionContext,
        *,
        user_ids: list[str] | None = None,
        login: str | None = None,
        cursors: dict[str, str] | None = None,
        limit: int = 25,
    ) -> dict[str, Any]:
        """One merged VOD page plus the per-batch cursor map for the next one.

        Channel ids keep their request order in the cache key: batches, and so
        the cursor map, depend on that order.
        """

        async def fetch(token: str) -> dict[str, Any]:
            ids = user_ids
            if not ids:
                user = await self.twitch_api.get_user_by_login(token, login or "")
                if user is None:
                    raise NotFoundError("User not found")
                ids = [user.id]

            page = await self.aggregator.fetch_videos(ids, token, cursors=cursors, page_size=limit)
            return {
                "videos": [_present_video(v) for v in page.videos],
                "pagination": page.cursors,
            }

        target = ",".join(dict.fromkeys(user_ids)) if user_ids else f"login={(login or '').lower()}"
        cursor_key = "-" if cursors is None else json.dumps(cursors, sort_keys=True)
        return await self.cache.get_or_compute(
            f"videos:{session.user_id}:{limit}:{target}:{cursor_key}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_videos,
        )

    # ------------------------------------------------------------------
    # Search and users
    # ------------------------------------------------------------------

    async def search(
        self,
        session: SessionContext,
        query: str,
        *,
        search_type: str = "channels",
        cursor: str | None = None,
        limit: int = 25,
        live_only: bool = False,
    ) -> dict[str, Any]:
        async def fetch(token: str) -> dict[str, Any]:
            if search_type == "categories":
                categories, next_cursor = await self.twitch_api.search_categories(
                    token, query, first=limit, after=cursor
                )
                data = [c.model_dump(mode="json") for c in categories]
            else:
                channels, next_cursor = await self.twitch_api.search_channels(
                    token, query, first=limit, after=cursor, live_only=live_only
                )
                data = [c.model_dump(mode="json") for c in channels]
            return {"data": data, "pagination": next_cursor or ""}

        return await self.cache.get_or_compute(
            f"search:{session.user_id}:{search_type}:{query}:{cursor or ''}:{limit}:{live_only}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_search,
        )

    async def get_user(self, session: SessionContext, login: str) -> dict[str, str]:
        async def fetch(token: str) -> dict[str, str]:
            user = await self.twitch_api.get_user_by_login(token, login)
            if user is None:
                raise NotFoundError("User not found")
            return {
                "id": user.id,
                "login": user.login,
                "display_name": user.display_name,
                "profile_image_url": user.profile_image_url,
            }

        return await self.cache.get_or_compute(
            f"user:{session.user_id}:{login.lower()}",
            lambda: self._with_token(session, fetch),
            self.settings.cache_ttl_users,
        )

    def forget_user(self, user_id: str) -> int:
        """Drop every cached response for a user (used on logout)."""
        removed = 0
        for prefix in CACHE_PREFIXES:
            removed += self.cache.invalidate(f"{prefix}:{user_id}")
            removed += self.cache.invalidate(f"{prefix}:{user_id}:*")
        return removed
