"""Data models for Twitch payloads and sessions."""

from .session import SessionContext, SessionData
from .twitch import (
    FollowedChannel,
    MutedSegment,
    SearchCategory,
    SearchChannel,
    Stream,
    TokenPair,
    TwitchUser,
    Video,
)

__all__ = [
    "FollowedChannel",
    "MutedSegment",
    "SearchCategory",
    "SearchChannel",
    "SessionContext",
    "SessionData",
    "Stream",
    "TokenPair",
    "TwitchUser",
    "Video",
]
