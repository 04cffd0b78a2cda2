from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lecture_tracker.dependencies import get_playlist_fetcher, reset_cached_dependencies
from lecture_tracker.main import create_app
from lecture_tracker.services.import_errors import QuotaExceededError
from lecture_tracker.services.playlist_fetcher import PlaylistFetcher
from tests.fake_video_api import (
    PLAYLIST_ID,
    VALID_API_KEY,
    FakeVideoApiClient,
    build_pages,
    playlist_item,
    playlist_payload,
    video_ids,
)


def _fake_client(count: int = 3, **options: object) -> FakeVideoApiClient:
    items = [playlist_item(video_id, position=index) for index, video_id in enumerate(video_ids(count))]
    return FakeVideoApiClient(pages=build_pages(items, [count]), **options)  # type: ignore[arg-type]


def _use_fetcher(client: TestClient, video_api: FakeVideoApiClient) -> None:
    app = client.app
    assert isinstance(app, FastAPI)
    fetcher = PlaylistFetcher(video_api, sleep=lambda _: None)
    app.dependency_overrides[get_playlist_fetcher] = lambda: fetcher


def _import(client: TestClient, user_id: str = "user-1", category: str = "Mathematics") -> dict[str, object]:
    response = client.post(
        f"/library/{user_id}/import",
        json={"playlistId": PLAYLIST_ID, "category": category},
    )
    assert response.status_code == 200
    return response.json()


def test_health_reports_api_key_state(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["hasApiKey"] is True
    assert body["timestamp"]
    assert response.headers["X-RateLimit-Limit"] == "100"
    assert response.headers["X-RateLimit-Remaining"] == "99"


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_fetch_playlist_returns_info_and_videos(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(3))

    response = client.get(f"/playlist/{PLAYLIST_ID}")

    assert response.status_code == 200
    body = response.json()
    assert body["playlistInfo"]["id"] == PLAYLIST_ID
    assert body["playlistInfo"]["videoCount"] == 3
    assert body["playlistInfo"]["totalDuration"] == "12m"
    assert [video["originalIndex"] for video in body["videos"]] == [1, 2, 3]
    assert body["videos"][0]["externalVideoId"] == "vid0001"
    assert body["videos"][0]["duration"] == "4:05"


def test_fetch_playlist_maps_import_errors(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(playlist=playlist_payload(privacy_status="private")))
    private = client.get(f"/playlist/{PLAYLIST_ID}")
    assert private.status_code == 403
    assert private.json()["error"] == "Private playlist"

    quota_client = _fake_client()
    quota_client.playlist_errors = [QuotaExceededError()]
    _use_fetcher(client, quota_client)
    quota = client.get(f"/playlist/{PLAYLIST_ID}")
    assert quota.status_code == 403
    assert quota.json()["error"] == "API quota exceeded"

    invalid = client.get("/playlist/bad")
    assert invalid.status_code == 400
    assert invalid.json() == {
        "error": "Invalid playlist ID",
        "message": "Please provide a valid YouTube playlist ID or URL.",
    }


def test_fetch_playlist_without_api_key_is_configuration_error(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(configured=False))

    response = client.get(f"/playlist/{PLAYLIST_ID}")

    assert response.status_code == 500
    assert response.json()["error"] == "Invalid API configuration"


def test_extract_playlist_id(client: TestClient) -> None:
    ok = client.post(
        "/extract-playlist-id",
        json={"url": "https://www.youtube.com/watch?v=abc&list=PLabcdefghij&index=3"},
    )
    assert ok.status_code == 200
    assert ok.json() == {"playlistId": "PLabcdefghij"}

    missing = client.post("/extract-playlist-id", json={})
    assert missing.status_code == 400
    assert missing.json()["error"] == "URL is required"

    wrong_host = client.post("/extract-playlist-id", json={"url": "https://vimeo.com/123"})
    assert wrong_host.status_code == 400
    assert wrong_host.json()["error"] == "Invalid YouTube URL"

    no_list = client.post(
        "/extract-playlist-id",
        json={"url": "https://www.youtube.com/watch?v=abc"},
    )
    assert no_list.status_code == 400
    assert no_list.json()["error"] == "Invalid YouTube playlist URL"


def test_import_then_list_playlists_and_stats(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(3))

    imported = _import(client)
    assert imported["importedCount"] == 3

    listed = client.get("/library/user-1/playlists")
    assert listed.status_code == 200
    playlists = listed.json()["playlists"]
    assert len(playlists) == 1
    assert playlists[0]["title"] == "Linear Algebra Course"
    assert playlists[0]["instructor"] == "Lecturer"
    assert playlists[0]["category"] == "Mathematics"
    assert playlists[0]["source"] == "youtube-playlist"
    assert playlists[0]["totalVideos"] == 3
    assert playlists[0]["completedVideos"] == 0
    assert playlists[0]["playlistId"] == PLAYLIST_ID

    stats = client.get("/library/user-1/stats").json()
    assert stats["totalPlaylists"] == 1
    assert stats["completedPlaylists"] == 0
    assert stats["completionRate"] == 0
    assert stats["totalVideos"] == 3
    assert stats["currentStreak"] == 0
    assert stats["streakMessage"] == "Start your streak today!"

    assert client.get("/library/guest/playlists").json() == {"playlists": []}


def test_import_requires_a_reference(client: TestClient) -> None:
    response = client.post("/library/user-1/import", json={"category": "Science"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_delete_playlist_cascades_and_is_not_repeatable(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(3))
    _import(client)
    key = {"source": "youtube-playlist", "instructor": "Lecturer", "category": "Mathematics"}

    deleted = client.post("/library/user-1/playlists/delete", json=key)
    assert deleted.status_code == 200
    assert deleted.json() == {"deleted": True, "removedVideos": 3}

    again = client.post("/library/user-1/playlists/delete", json=key)
    assert again.status_code == 404
    assert again.json()["error"] == "Playlist not found"
    assert client.get("/library/user-1/playlists").json() == {"playlists": []}


def test_reorder_playlist(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(2))
    _import(client, category="Mathematics")
    _import(client, category="Science")

    response = client.post(
        "/library/user-1/playlists/reorder",
        json={
            "key": {"source": "youtube-playlist", "instructor": "Lecturer", "category": "Science"},
            "targetIndex": 0,
        },
    )

    assert response.status_code == 200
    assert [playlist["category"] for playlist in response.json()["playlists"]] == [
        "Science",
        "Mathematics",
    ]
    listed = client.get("/library/user-1/playlists").json()["playlists"]
    assert [playlist["category"] for playlist in listed] == ["Science", "Mathematics"]

    unknown = client.post(
        "/library/user-1/playlists/reorder",
        json={
            "key": {"source": "manual", "instructor": "Nobody", "category": "Science"},
            "targetIndex": 0,
        },
    )
    assert unknown.status_code == 404


def test_close_session_reports_whether_open(client: TestClient) -> None:
    client.get("/library/user-1/playlists")

    assert client.delete("/library/user-1/session").json() == {"closed": True}
    assert client.delete("/library/user-1/session").json() == {"closed": False}


def test_library_survives_session_close(client: TestClient) -> None:
    _use_fetcher(client, _fake_client(2))
    _import(client)
    client.delete("/library/user-1/session")

    playlists = client.get("/library/user-1/playlists").json()["playlists"]
    assert [playlist["totalVideos"] for playlist in playlists] == [2]


def test_import_without_category_uses_configured_default(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data_dir = tmp_path / "runtime-data-default"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("LECTURE_TRACKER_DATA_DIR", str(data_dir))
    monkeypatch.setenv("LECTURE_TRACKER_YOUTUBE_API_KEY", VALID_API_KEY)
    monkeypatch.setenv("LECTURE_TRACKER_TELEMETRY_SINK", "none")
    monkeypatch.setenv("LECTURE_TRACKER_DEFAULT_CATEGORY", "Lectures")
    reset_cached_dependencies()

    try:
        with TestClient(create_app()) as test_client:
            _use_fetcher(test_client, _fake_client(2))

            omitted = test_client.post("/library/user-1/import", json={"playlistId": PLAYLIST_ID})
            blank = test_client.post(
                "/library/user-2/import",
                json={"playlistId": PLAYLIST_ID, "category": "   "},
            )

            assert omitted.status_code == 200
            assert omitted.json()["importedCount"] == 2
            assert blank.status_code == 200
            for user_id in ("user-1", "user-2"):
                playlists = test_client.get(f"/library/{user_id}/playlists").json()["playlists"]
                assert [playlist["category"] for playlist in playlists] == ["Lectures"]
    finally:
        reset_cached_dependencies()


@pytest.fixture
def limited_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data-limited"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("LECTURE_TRACKER_DATA_DIR", str(data_dir))
    monkeypatch.setenv("LECTURE_TRACKER_YOUTUBE_API_KEY", VALID_API_KEY)
    monkeypatch.setenv("LECTURE_TRACKER_TELEMETRY_SINK", "none")
    monkeypatch.setenv("LECTURE_TRACKER_RATE_LIMIT_MAX_REQUESTS", "2")
    reset_cached_dependencies()

    with TestClient(create_app()) as test_client:
        yield test_client

    reset_cached_dependencies()


def test_rate_limit_rejects_requests_over_the_window(limited_client: TestClient) -> None:
    assert limited_client.get("/health").status_code == 200
    assert limited_client.get("/health").status_code == 200

    rejected = limited_client.get("/health")

    assert rejected.status_code == 429
    body = rejected.json()
    assert body["error"] == "Rate limit exceeded"
    assert body["retryAfterSeconds"] > 0
    assert int(rejected.headers["Retry-After"]) == body["retryAfterSeconds"]
