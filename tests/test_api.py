from __future__ import annotations

import asyncio
import json

import httpx
from fastapi.testclient import TestClient

from tests.fakes import (
    VIEWER_ID,
    FakeTwitch,
    make_stream,
    make_user,
    make_video,
    sign_in,
    stored_session,
)
from twitch_feed.core.dependencies import SESSION_COOKIE, get_cache
from twitch_feed.services import TwitchAPIClient, VideoAggregator

# ============================================
# Service endpoints
# ============================================


def test_root_health_and_ping(client: TestClient) -> None:
    assert client.get("/").json() == {"service": "twitch-feed-api", "status": "running"}
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/ping").text == "pong"

    status = client.get("/status").json()
    assert status["session_backend"] == "memory"
    assert status["db_connected"] is None


# ============================================
# Authentication
# ============================================


def test_data_routes_require_a_session(client: TestClient) -> None:
    for path in (
        "/api/followed",
        "/api/streams",
        "/api/streams/channel?login=x",
        "/api/videos?userId=1",
        "/api/search?query=x",
        "/api/search/streams?userIds=1",
        "/api/user?login=x",
    ):
        response = client.get(path)
        assert response.status_code == 401, path
        assert response.json() == {"detail": "Not logged in"}


def test_forged_cookie_is_rejected(client: TestClient) -> None:
    client.cookies.set(SESSION_COOKIE, "not-a-jwt")
    assert client.get("/api/followed").status_code == 401


def test_login_redirects_to_twitch_with_state_cookie(client: TestClient) -> None:
    response = client.get("/api/auth/login", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://id.twitch.tv/oauth2/authorize")
    state = response.cookies["twitch_oauth_state"]
    assert f"state={state}" in response.headers["location"]


def test_callback_creates_session(client: TestClient, fake_twitch: FakeTwitch) -> None:
    login = client.get("/api/auth/login", follow_redirects=False)
    state = login.cookies["twitch_oauth_state"]

    response = client.get(
        "/api/auth/callback",
        params={"code": "good-code", "state": state},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "http://frontend.test/"
    assert SESSION_COOKIE in response.cookies

    session = client.get("/api/auth/session").json()
    assert session["isAuthenticated"] is True
    assert session["user"]["id"] == VIEWER_ID
    assert session["user"]["login"] == "viewer"


def test_callback_rejects_state_mismatch(client: TestClient, fake_twitch: FakeTwitch) -> None:
    client.get("/api/auth/login", follow_redirects=False)

    response = client.get(
        "/api/auth/callback",
        params={"code": "good-code", "state": "forged"},
        follow_redirects=False,
    )

    assert response.headers["location"] == "http://frontend.test/?error=state_mismatch"
    assert SESSION_COOKIE not in response.cookies
    assert fake_twitch.calls("/oauth2/token") == []


def test_callback_reports_twitch_error(client: TestClient) -> None:
    response = client.get(
        "/api/auth/callback", params={"error": "access_denied"}, follow_redirects=False
    )
    assert response.headers["location"] == "http://frontend.test/?error=access_denied"


def test_callback_reports_failed_exchange(client: TestClient) -> None:
    login = client.get("/api/auth/login", follow_redirects=False)
    response = client.get(
        "/api/auth/callback",
        params={"code": "bad-code", "state": login.cookies["twitch_oauth_state"]},
        follow_redirects=False,
    )
    assert response.headers["location"] == "http://frontend.test/?error=token_exchange_failed"


def test_session_state_without_cookie(client: TestClient) -> None:
    assert client.get("/api/auth/session").json() == {"isAuthenticated": False, "user": None}


def test_session_state_with_revoked_refresh(client: TestClient, fake_twitch: FakeTwitch) -> None:
    sign_in(client, fake_twitch, access_token="expired", refresh_token="revoked")
    assert client.get("/api/auth/session").json()["isAuthenticated"] is False


def test_logout_drops_session_and_cache(client: TestClient, fake_twitch: FakeTwitch) -> None:
    session_id = sign_in(client, fake_twitch)
    assert client.get("/api/followed").status_code == 200
    assert get_cache().size == 1

    response = client.post("/api/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    assert f"{SESSION_COOKIE}=" in response.headers["set-cookie"]
    assert stored_session(session_id) is None
    assert get_cache().size == 0


def test_logout_without_session(client: TestClient) -> None:
    assert client.post("/api/auth/logout").status_code == 200


# ============================================
# Followed channels and streams
# ============================================


def test_followed_channels_all_pages_with_profile_images(
    client: TestClient, fake_twitch: FakeTwitch
) -> None:
    fake_twitch.page_cap = 2
    fake_twitch.follow("11", "alpha")
    fake_twitch.follow("12", "bravo")
    fake_twitch.follow("13", "charlie", with_user=False)
    sign_in(client, fake_twitch)

    response = client.get("/api/followed")

    assert response.status_code == 200
    channels = response.json()
    assert [c["broadcaster_id"] for c in channels] == ["11", "12", "13"]
    assert channels[0]["profile_image_url"] == "https://img.example/alpha.png"
    assert channels[2]["profile_image_url"] == ""
    assert len(fake_twitch.calls("/helix/channels/followed")) == 2


def test_followed_channels_are_cached(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.follow("11", "alpha")
    sign_in(client, fake_twitch)

    client.get("/api/followed")
    client.get("/api/followed")

    assert len(fake_twitch.calls("/helix/channels/followed")) == 1


def test_live_streams(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.users["21"] = make_user("21", "streamer")
    fake_twitch.streams.append(make_stream("21", "streamer"))
    sign_in(client, fake_twitch)

    streams = client.get("/api/streams").json()

    assert len(streams) == 1
    assert streams[0]["user_login"] == "streamer"
    assert streams[0]["tag_ids"] == []
    assert streams[0]["tags"] == ["English"]
    assert streams[0]["profile_image_url"] == "https://img.example/streamer.png"
    assert streams[0]["preview_url"].endswith("live_user_streamer-640x360.jpg")


def test_channel_stream(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.users["21"] = make_user("21", "streamer")
    fake_twitch.users["22"] = make_user("22", "offline")
    fake_twitch.streams.append(make_stream("21", "streamer"))
    sign_in(client, fake_twitch)

    live = client.get("/api/streams/channel", params={"login": "streamer"}).json()
    assert live["stream"]["user_id"] == "21"

    assert client.get("/api/streams/channel", params={"login": "offline"}).json() == {"stream": None}
    assert client.get("/api/streams/channel", params={"login": "nobody"}).json() == {"stream": None}
    assert client.get("/api/streams/channel").status_code == 400


def test_streams_for_users(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.streams.append(make_stream("21", "streamer"))
    fake_twitch.streams.append(make_stream("22", "other"))
    sign_in(client, fake_twitch)

    streams = client.get("/api/search/streams", params={"userIds": "21,99"}).json()

    assert [s["user_id"] for s in streams] == ["21"]
    assert client.get("/api/search/streams").status_code == 400
    assert client.get("/api/search/streams", params={"userIds": " , "}).status_code == 400


# ============================================
# Videos
# ============================================


def _seed_vods(fake: FakeTwitch, channels: int, per_channel: int) -> list[str]:
    ids = [str(100 + i) for i in range(channels)]
    minute = 0
    for uid in ids:
        for n in range(per_channel):
            minute += 1
            fake.videos.append(make_video(f"{uid}-{n}", uid, minute))
    return ids


def test_videos_merged_page_and_cursor_replay(client: TestClient, fake_twitch: FakeTwitch) -> None:
    ids = _seed_vods(fake_twitch, channels=12, per_channel=3)
    sign_in(client, fake_twitch)

    first = client.get("/api/videos", params={"userId": ",".join(ids), "limit": 5}).json()

    assert len(first["videos"]) == 5
    assert first["pagination"] == {"batch_0": "5", "batch_1": "5"}
    created = [v["created_at"] for v in first["videos"]]
    assert created == sorted(created, reverse=True)
    assert first["videos"][0]["view_count_label"] == "1.5K"
    assert first["videos"][0]["duration_label"] == "1:02:03"
    assert first["videos"][0]["preview_url"].endswith("thumb0-640x360.jpg")
    assert len(fake_twitch.calls("/helix/videos")) == 2

    second = client.get(
        "/api/videos",
        params={
            "userId": ",".join(ids),
            "limit": 5,
            "cursor": json.dumps({"batch_1": first["pagination"]["batch_1"]}),
        },
    ).json()

    calls = fake_twitch.calls("/helix/videos")
    assert len(calls) == 3
    assert calls[-1].url.params.get_list("user_id") == ids[10:]
    assert calls[-1].url.params["after"] == "5"
    assert [v["id"] for v in second["videos"]] == ["110-0"]
    assert second["pagination"] == {}


def test_videos_by_login(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.users["31"] = make_user("31", "vodder")
    fake_twitch.videos.append(make_video("v1", "31", 1))
    sign_in(client, fake_twitch)

    response = client.get("/api/videos", params={"login": "vodder"})

    assert response.status_code == 200
    assert [v["id"] for v in response.json()["videos"]] == ["v1"]


def test_videos_parameter_errors(client: TestClient, fake_twitch: FakeTwitch) -> None:
    sign_in(client, fake_twitch)

    assert client.get("/api/videos").status_code == 400
    assert client.get("/api/videos", params={"userId": "1", "limit": 0}).status_code == 400
    assert client.get("/api/videos", params={"userId": "1", "limit": 101}).status_code == 400
    assert client.get("/api/videos", params={"login": "nobody"}).status_code == 404


def test_videos_malformed_cursor_starts_fresh(client: TestClient, fake_twitch: FakeTwitch) -> None:
    ids = _seed_vods(fake_twitch, channels=1, per_channel=2)
    sign_in(client, fake_twitch)

    for cursor in ("{not json", "[1, 2]", '{"batch_0": 5}'):
        response = client.get("/api/videos", params={"userId": ids[0], "cursor": cursor})
        assert response.status_code == 200
        assert len(response.json()["videos"]) == 2

    # every malformed cursor maps to the same fresh query, served from cache
    assert len(fake_twitch.calls("/helix/videos")) == 1


def test_videos_cursor_map_follows_request_order(
    client: TestClient, fake_twitch: FakeTwitch
) -> None:
    ids = [str(i) for i in range(1, 11)]
    for minute, uid in enumerate(ids, start=1):
        fake_twitch.videos.append(make_video(f"{uid}-0", uid, minute))
    for n in range(3):
        fake_twitch.videos.append(make_video(f"11-{n}", "11", 20 + n))
    sign_in(client, fake_twitch)

    in_order = ids + ["11"]
    reordered = ["11"] + ids
    first = client.get("/api/videos", params={"userId": ",".join(in_order), "limit": 2}).json()
    second = client.get("/api/videos", params={"userId": ",".join(reordered), "limit": 2}).json()

    assert first["pagination"] == {"batch_0": "2", "batch_1": "2"}
    assert second["pagination"] == {"batch_0": "2"}
    assert len(fake_twitch.calls("/helix/videos")) == 4

    api = TwitchAPIClient(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://testserver/api/auth/callback",
        transport=httpx.MockTransport(fake_twitch.handler),
    )
    aggregator = VideoAggregator(api, batch_size=10)
    for order, body in ((in_order, first), (reordered, second)):
        page = asyncio.run(aggregator.fetch_videos(order, "access-1", page_size=2))
        assert body["pagination"] == page.cursors
        assert [v["id"] for v in body["videos"]] == [v.id for v in page.videos]


# ============================================
# Search and users
# ============================================


def test_search_channels_and_categories(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.channels.append(
        {"id": "41", "broadcaster_login": "speedrunner", "display_name": "Speedrunner", "tags": None}
    )
    fake_twitch.categories.append({"id": "7", "name": "Speedrunning", "box_art_url": ""})
    sign_in(client, fake_twitch)

    channels = client.get("/api/search", params={"query": "speed"}).json()
    assert channels == {
        "data": [
            {
                "id": "41",
                "broadcaster_login": "speedrunner",
                "display_name": "Speedrunner",
                "game_id": "",
                "game_name": "",
                "is_live": False,
                "tags": [],
                "thumbnail_url": "",
                "title": "",
                "started_at": "",
            }
        ],
        "pagination": "",
    }

    categories = client.get("/api/search", params={"query": "speed", "type": "categories"}).json()
    assert categories["data"][0]["name"] == "Speedrunning"


def test_search_parameter_errors(client: TestClient, fake_twitch: FakeTwitch) -> None:
    sign_in(client, fake_twitch)

    assert client.get("/api/search").status_code == 400
    assert client.get("/api/search", params={"query": "x", "type": "videos"}).status_code == 400


def test_search_pagination_cursor(client: TestClient, fake_twitch: FakeTwitch) -> None:
    for i in range(3):
        fake_twitch.categories.append({"id": str(i), "name": f"Game {i}"})
    sign_in(client, fake_twitch)

    page = client.get(
        "/api/search", params={"query": "game", "type": "categories", "limit": 2}
    ).json()
    assert page["pagination"] == "2"

    rest = client.get(
        "/api/search",
        params={"query": "game", "type": "categories", "limit": 2, "cursor": page["pagination"]},
    ).json()
    assert [c["id"] for c in rest["data"]] == ["2"]
    assert rest["pagination"] == ""


def test_user_lookup(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.users["51"] = make_user("51", "someone")
    sign_in(client, fake_twitch)

    assert client.get("/api/user", params={"login": "someone"}).json() == {
        "id": "51",
        "login": "someone",
        "display_name": "Someone",
        "profile_image_url": "https://img.example/someone.png",
    }
    assert client.get("/api/user", params={"login": "nobody"}).status_code == 404
    assert client.get("/api/user").status_code == 400


# ============================================
# Token refresh and upstream failures
# ============================================


def test_expired_token_is_refreshed_and_persisted(
    client: TestClient, fake_twitch: FakeTwitch
) -> None:
    fake_twitch.follow("11", "alpha")
    session_id = sign_in(client, fake_twitch, access_token="expired")

    response = client.get("/api/followed")

    assert response.status_code == 200
    assert len(fake_twitch.calls("/oauth2/token")) == 1
    stored = stored_session(session_id)
    assert stored is not None
    assert stored.tokens.access_token not in ("expired", "access-1")
    followed_call = fake_twitch.calls("/helix/channels/followed")[0]
    assert followed_call.headers["Authorization"] == f"Bearer {stored.tokens.access_token}"


def test_data_call_401_forces_one_refresh_and_retry(
    client: TestClient, fake_twitch: FakeTwitch
) -> None:
    fake_twitch.follow("11", "alpha")
    fake_twitch.reject_data_tokens.add("access-1")
    sign_in(client, fake_twitch)

    response = client.get("/api/followed")

    assert response.status_code == 200
    assert len(fake_twitch.calls("/oauth2/token")) == 1
    followed_calls = fake_twitch.calls("/helix/channels/followed")
    assert [c.headers["Authorization"] for c in followed_calls] == [
        "Bearer access-1",
        "Bearer access-2",
    ]


def test_failed_refresh_is_401_without_retry(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.reject_data_tokens.add("access-1")
    sign_in(client, fake_twitch, refresh_token="revoked")

    response = client.get("/api/followed")

    assert response.status_code == 401
    assert response.json() == {"detail": "Twitch session expired"}
    assert len(fake_twitch.calls("/oauth2/token")) == 1
    assert len(fake_twitch.calls("/helix/channels/followed")) == 1


def test_upstream_failure_is_502(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.failures["/channels/followed"] = 500
    sign_in(client, fake_twitch)

    response = client.get("/api/followed")

    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to fetch data from Twitch"}

    # failures are not cached
    del fake_twitch.failures["/channels/followed"]
    assert client.get("/api/followed").status_code == 200


def test_upstream_rate_limit_is_503(client: TestClient, fake_twitch: FakeTwitch) -> None:
    fake_twitch.failures["/streams/followed"] = 429
    sign_in(client, fake_twitch)

    response = client.get("/api/streams")

    assert response.status_code == 503
    assert response.json() == {"detail": "Twitch rate limit reached"}
