from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from tests.fakes import FakeTwitch
from twitch_feed.app import create_app
from twitch_feed.core.database import reset_database_manager
from twitch_feed.core.dependencies import get_twitch_api, reset_dependencies
from twitch_feed.services import TwitchAPIClient


@pytest.fixture(autouse=True)
def _twitch_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    monkeypatch.setenv("CLIENT_ID", "test-client-id")
    monkeypatch.setenv("CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-jwt-secret")
    monkeypatch.setenv("FRONTEND_URL", "http://frontend.test")
    monkeypatch.setenv("API_URL", "http://testserver")
    monkeypatch.setenv("SESSION_BACKEND", "memory")
    reset_dependencies()
    reset_database_manager()
    yield
    reset_dependencies()
    reset_database_manager()


@pytest.fixture
def fake_twitch() -> FakeTwitch:
    return FakeTwitch()


@pytest.fixture
def twitch_api(fake_twitch: FakeTwitch) -> TwitchAPIClient:
    return TwitchAPIClient(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://testserver/api/auth/callback",
        transport=httpx.MockTransport(fake_twitch.handler),
    )


@pytest.fixture
def client(twitch_api: TwitchAPIClient) -> Iterator[TestClient]:
    app = create_app()
    app.dependency_overrides[get_twitch_api] = lambda: twitch_api
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
