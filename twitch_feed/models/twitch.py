"""Schemas for Twitch OAuth and Helix payloads.

Unknown upstream fields are kept so that responses stay forward compatible
with new Helix attributes.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class TwitchModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class TokenPair(TwitchModel):
    """OAuth token pair returned by the token endpoint."""

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    token_type: str = "bearer"
    scope: list[str] = []

    @field_validator("scope", mode="before")
    @classmethod
    def split_scope(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        return value


class TwitchUser(TwitchModel):
    id: str
    login: str
    display_name: str
    profile_image_url: str = ""
    email: str | None = None


class FollowedChannel(TwitchModel):
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str
    followed_at: datetime
    profile_image_url: str | None = None


class Stream(TwitchModel):
    """A channel that is currently live."""

    id: str
    user_id: str
    user_login: str
    user_name: str
    game_id: str = ""
    game_name: str = ""
    type: str = ""
    title: str = ""
    viewer_count: int = 0
    started_at: datetime
    thumbnail_url: str = ""
    tag_ids: list[str] = []
    is_mature: bool = False
    profile_image_url: str | None = None

    @field_validator("tag_ids", mode="before")
    @classmethod
    def null_tags(cls, value: object) -> object:
        # Helix returns null for tag_ids since tags replaced them
        return [] if value is None else value


class MutedSegment(TwitchModel):
    duration: int
    offset: int


class Video(TwitchModel):
    """A published VOD. Ordered by ``created_at`` descending in feeds."""

    id: str
    stream_id: str | None = None
    user_id: str
    user_login: str = ""
    user_name: str
    title: str = ""
    description: str = ""
    created_at: datetime
    published_at: datetime
    url: str = ""
    thumbnail_url: str = ""
    viewable: str = "public"
    view_count: int = 0
    language: str = ""
    duration: str = ""
    muted_segments: list[MutedSegment] = []
    game_id: str | None = None

    @field_validator("muted_segments", mode="before")
    @classmethod
    def null_segments(cls, value: object) -> object:
        return [] if value is None else value


class SearchChannel(TwitchModel):
    id: str
    broadcaster_login: str
    display_name: str
    game_id: str = ""
    game_name: str = ""
    is_live: bool = False
    tags: list[str] = []
    thumbnail_url: str = ""
    title: str = ""
    started_at: str = ""

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags(cls, value: object) -> object:
        return [] if value is None else value


class SearchCategory(TwitchModel):
    id: str
    name: str
    box_art_url: str = ""
