"""Merged VOD feed across any number of channels.

Helix ``/videos`` accepts a bounded number of ``user_id`` values per call, so
channel ids are split into fixed-size batches that are paged independently.
Each batch keeps its own upstream cursor under a key derived from the batch
index, so a cursor map must be replayed against the same channel id list in
the same order.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from twitch_feed.models.twitch import Video

from .twitch_api import HELIX_MAX_PAGE, TwitchAPIClient

logger = logging.getLogger(__name__)

BATCH_SIZE = 10


def partition(ids: Sequence[str], size: int = BATCH_SIZE) -> list[list[str]]:
    """Consecutive batches of *size* ids, in input order."""
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]


def batch_key(index: int) -> str:
    return f"batch_{index}"


@dataclass
class VideoPage:
    videos: list[Video] = field(default_factory=list)
    # batch key -> upstream cursor, present only for batches with more pages
    cursors: dict[str, str] = field(default_factory=dict)


class VideoAggregator:
    def __init__(self, twitch_api: TwitchAPIClient, batch_size: int = BATCH_SIZE):
        self.twitch_api = twitch_api
        self.batch_size = batch_size

    async def fetch_videos(
        self,
        channel_ids: Sequence[str],
        token: str,
        cursors: Mapping[str, str] | None = None,
        page_size: int = 25,
    ) -> VideoPage:
        """Fetch one merged page of VODs, newest first.

        ``cursors=None`` starts every batch from its first page. A mapping
        resumes only the batches it names; batches missing from it are
        exhausted and are not queried again.
        """
        page_size = max(1, min(page_size, HELIX_MAX_PAGE))
        batches = partition(list(dict.fromkeys(channel_ids)), self.batch_size)
        if not batches:
            return VideoPage()

        # (batch key, ids, cursor) for every batch that still has pages
        pending: list[tuple[str, list[str], str | None]] = []
        for index, batch in enumerate(batches):
            key = batch_key(index)
            if cursors is None:
                pending.append((key, batch, None))
            elif key in cursors:
                pending.append((key, batch, cursors[key]))

        if not pending:
            return VideoPage()

        logger.debug(
            f"Fetching videos: {len(channel_ids)} channels, "
            f"{len(pending)}/{len(batches)} batches, page_size={page_size}"
        )

        results = await asyncio.gather(
            *(
                self.twitch_api.get_video_page(token, ids, first=page_size, after=cursor)
                for _, ids, cursor in pending
            )
        )

        merged: dict[str, Video] = {}
        next_cursors: dict[str, str] = {}
        for (key, _, _), (videos, cursor) in zip(pending, results, strict=True):
            for video in videos:
                merged.setdefault(video.id, video)
            if cursor:
                next_cursors[key] = cursor

        ordered = sorted(merged.values(), key=lambda v: (v.created_at, v.id), reverse=True)
        return VideoPage(videos=ordered[:page_size], cursors=next_cursors)
