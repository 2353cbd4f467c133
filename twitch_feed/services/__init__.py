"""Services layer - Business logic

This module provides service classes for handling business logic.
Services are initialized with their dependencies and accessed through dependency injection.
"""

from .auth_service import AuthService
from .feed_service import FeedService
from .session_store import MemorySessionStore, PostgresSessionStore, SessionStore
from .token_manager import TokenManager
from .twitch_api import HelixPage, TwitchAPIClient
from .video_aggregator import VideoAggregator, VideoPage

__all__ = [
    "AuthService",
    "FeedService",
    "HelixPage",
    "MemorySessionStore",
    "PostgresSessionStore",
    "SessionStore",
    "TokenManager",
    "TwitchAPIClient",
    "VideoAggregator",
    "VideoPage",
]
