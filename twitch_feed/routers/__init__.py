"""API Routers package

This package contains all API route handlers.
Routers are organized by feature domain.
"""

from . import (
    auth_router,
    followed_router,
    search_router,
    streams_router,
    user_router,
    videos_router,
)

__all__ = [
    "auth_router",
    "followed_router",
    "search_router",
    "streams_router",
    "user_router",
    "videos_router",
]
