"""Twitch feed API server entry point"""

import uvicorn

from twitch_feed.app import create_app
from twitch_feed.core.config import get_settings

app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
