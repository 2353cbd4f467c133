"""Twitch API client service.

All Helix calls are made with the signed-in user's access token. The client
classifies failures but never retries; retry policy belongs to the callers
(see ``FeedService`` and ``TokenManager``).
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from twitch_feed.core.errors import (
    TwitchAPIError,
    TwitchDecodeError,
    TwitchRateLimitError,
    TwitchUnauthorizedError,
)
from twitch_feed.models.twitch import (
    FollowedChannel,
    SearchCategory,
    SearchChannel,
    Stream,
    TokenPair,
    TwitchUser,
    Video,
)

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"

# Helix caps ids per request and items per page at 100
HELIX_MAX_IDS = 100
HELIX_MAX_PAGE = 100

M = TypeVar("M", bound=BaseModel)

ParamValue = str | int | bool | Sequence[str] | None


@dataclass
class HelixPage:
    """One page of a Helix collection."""

    data: list[dict]
    cursor: str | None = None


def build_query(params: Mapping[str, ParamValue] | None) -> list[tuple[str, str]]:
    """Flatten params into query pairs; list values become repeated keys in order."""
    pairs: list[tuple[str, str]] = []
    if not params:
        return pairs
    for key, value in params.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            pairs.append((key, "true" if value else "false"))
        elif isinstance(value, str | int):
            pairs.append((key, str(value)))
        else:
            pairs.extend((key, str(v)) for v in value)
    return pairs


def parse_models(model: type[M], items: list[dict]) -> list[M]:
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as e:
        logger.error(f"Unexpected {model.__name__} payload from Twitch: {e.error_count()} errors")
        raise TwitchDecodeError(f"Invalid {model.__name__} payload") from e


def chunked(items: Sequence[str], size: int) -> list[list[str]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class TwitchAPIClient:
    """Client for interacting with Twitch API.

    Manages a shared httpx client for connection reuse. ``transport`` lets
    tests plug in an ``httpx.MockTransport``.
    """

    USER_SCOPES = ["user:read:follows"]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not client_id or not client_secret:
            raise ValueError("Twitch client_id and client_secret are required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

        # Shared HTTP client, reused across requests
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    @staticmethod
    def _raise_for_status(response: httpx.Response, endpoint: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        logger.error(f"Twitch API error {status} on {endpoint}: {response.text[:200]}")
        if status == 401:
            raise TwitchUnauthorizedError("Unauthorized: token may be expired", status)
        if status == 429:
            raise TwitchRateLimitError("Rate limited: too many requests", status)
        raise TwitchAPIError(f"Twitch API error: {status}", status)

    async def _get(self, endpoint: str, params: Mapping[str, ParamValue] | None, token: str) -> dict:
        try:
            response = await self._http.get(
                f"{HELIX_BASE}{endpoint}",
                params=build_query(params),
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            logger.error(f"Helix GET {endpoint} transport error: {type(e).__name__}: {e}")
            raise TwitchAPIError(f"Transport error on {endpoint}") from e

        self._raise_for_status(response, endpoint)
        try:
            body = response.json()
        except ValueError as e:
            raise TwitchDecodeError(f"Non-JSON body from {endpoint}") from e
        if not isinstance(body, dict) or not isinstance(body.get("data", []), list):
            raise TwitchDecodeError(f"Unexpected body shape from {endpoint}")
        return body

    async def request(
        self, endpoint: str, params: Mapping[str, ParamValue] | None, token: str
    ) -> list[dict]:
        """Authenticated Helix GET returning the ``data`` array."""
        body = await self._get(endpoint, params, token)
        return body.get("data") or []

    async def request_page(
        self, endpoint: str, params: Mapping[str, ParamValue] | None, token: str
    ) -> HelixPage:
        """Authenticated Helix GET returning ``data`` plus the next-page cursor."""
        body = await self._get(endpoint, params, token)
        cursor = (body.get("pagination") or {}).get("cursor") or None
        return HelixPage(data=body.get("data") or [], cursor=cursor)

    async def _post_token(self, data: dict[str, str], action: str) -> TokenPair | None:
        try:
            response = await self._http.post(f"{OAUTH_BASE}/token", data=data)
        except httpx.TimeoutException:
            logger.error(f"Timeout during token {action}")
            return None
        except httpx.HTTPError as e:
            logger.error(f"Network error during token {action}: {type(e).__name__}: {e}")
            return None

        if not 200 <= response.status_code < 300:
            logger.error(f"Token {action} failed: HTTP {response.status_code}")
            logger.debug(f"Response: {response.text}")
            return None

        try:
            return TokenPair.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid token payload during {action}: {e}")
            return None

    # ------------------------------------------------------------------
    # OAuth flow
    # ------------------------------------------------------------------

    def generate_oauth_url(self, state: str) -> str:
        """Generate Twitch OAuth authorization URL."""
        scope_string = "+".join(s.replace(":", "%3A") for s in self.USER_SCOPES)
        encoded_redirect_uri = quote(self.redirect_uri, safe="")

        return (
            f"{OAUTH_BASE}/authorize"
            f"?client_id={self.client_id}"
            f"&redirect_uri={encoded_redirect_uri}"
            f"&response_type=code"
            f"&scope={scope_string}"
            f"&state={quote(state, safe='')}"
            f"&force_verify=true"
        )

    async def exchange_code_for_token(self, code: str) -> TokenPair | None:
        """Exchange an OAuth authorization code for a token pair."""
        return await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            "exchange",
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenPair | None:
        """Exchange a refresh token for a new pair. Never retries.

        Twitch may rotate the refresh token; when the response omits one the
        old refresh token is kept.
        """
        pair = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            "refresh",
        )
        if pair is not None and not pair.refresh_token:
            pair.refresh_token = refresh_token
        return pair

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_current_user(self, token: str) -> TwitchUser | None:
        """The "who am I" call; raises TwitchUnauthorizedError on 401."""
        users = parse_models(TwitchUser, await self.request("/users", None, token))
        return users[0] if users else None

    async def get_users(
        self,
        token: str,
        *,
        ids: Sequence[str] = (),
        logins: Sequence[str] = (),
    ) -> list[TwitchUser]:
        """Look up users by id or login, 100 per request, fetched concurrently."""
        if ids:
            key, values = "id", list(ids)
        elif logins:
            key, values = "login", list(logins)
        else:
            return []

        pages = await asyncio.gather(
            *(self.request("/users", {key: chunk}, token) for chunk in chunked(values, HELIX_MAX_IDS))
        )
        return parse_models(TwitchUser, [item for page in pages for item in page])

    async def get_user_by_login(self, token: str, login: str) -> TwitchUser | None:
        users = await self.get_users(token, logins=[login])
        return users[0] if users else None

    # ------------------------------------------------------------------
    # Follows and streams
    # ------------------------------------------------------------------

    async def get_followed_channels(
        self, token: str, user_id: str, first: int = HELIX_MAX_PAGE, after: str | None = None
    ) -> tuple[list[FollowedChannel], str | None]:
        page = await self.request_page(
            "/channels/followed", {"user_id": user_id, "first": first, "after": after}, token
        )
        return parse_models(FollowedChannel, page.data), page.cursor

    async def get_followed_streams(
        self, token: str, user_id: str, first: int = HELIX_MAX_PAGE, after: str | None = None
    ) -> tuple[list[Stream], str | None]:
        page = await self.request_page(
            "/streams/followed", {"user_id": user_id, "first": first, "after": after}, token
        )
        return parse_models(Stream, page.data), page.cursor

    async def get_streams(self, token: str, user_ids: Sequence[str]) -> list[Stream]:
        """Live streams for the given user ids, 100 ids per request."""
        if not user_ids:
            return []
        pages = await asyncio.gather(
            *(
                self.request("/streams", {"user_id": chunk, "first": HELIX_MAX_PAGE}, token)
                for chunk in chunked(list(user_ids), HELIX_MAX_IDS)
            )
        )
        return parse_models(Stream, [item for page in pages for item in page])

    # ------------------------------------------------------------------
    # Videos / VODs
    # ------------------------------------------------------------------

    async def get_video_page(
        self,
        token: str,
        user_ids: Sequence[str],
        first: int = 25,
        after: str | None = None,
    ) -> tuple[list[Video], str | None]:
        """One page of VODs for a set of users, newest first."""
        page = await self.request_page(
            "/videos",
            {
                "user_id": list(user_ids),
                "first": min(first, HELIX_MAX_PAGE),
                "sort": "time",
                "after": after,
            },
            token,
        )
        return parse_models(Video, page.data), page.cursor

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_channels(
        self,
        token: str,
        query: str,
        first: int = 25,
        after: str | None = None,
        live_only: bool = False,
    ) -> tuple[list[SearchChannel], str | None]:
        page = await self.request_page(
            "/search/channels",
            {
                "query": query,
                "first": min(first, HELIX_MAX_PAGE),
                "after": after,
                "live_only": True if live_only else None,
            },
            token,
        )
        return parse_models(SearchChannel, page.data), page.cursor

    async def search_categories(
        self, token: str, query: str, first: int = 25, after: str | None = None
    ) -> tuple[list[SearchCategory], str | None]:
        page = await self.request_page(
            "/search/categories",
            {"query": query, "first": min(first, HELIX_MAX_PAGE), "after": after},
            token,
        )
        return parse_models(SearchCategory, page.data), page.cursor
