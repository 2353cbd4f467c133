"""Server-side session records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from .twitch import TokenPair, TwitchUser


class SessionData(BaseModel):
    """Token pair and user snapshot stored per session id."""

    tokens: TokenPair
    user: TwitchUser
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@dataclass
class SessionContext:
    """Explicit per-request session handle passed into handlers."""

    session_id: str
    data: SessionData

    @property
    def user_id(self) -> str:
        return self.data.user.id
