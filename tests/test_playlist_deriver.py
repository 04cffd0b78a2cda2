from __future__ import annotations

from typing import Any

from lecture_tracker.models.library import LibraryStats, PlaylistKey, Video
from lecture_tracker.services.library_store import LibraryStore
from lecture_tracker.services.playlist_deriver import (
    PlaylistDeriver,
    compute_library_stats,
    derive_playlists,
)


def _video(video_id: str, **fields: Any) -> Video:
    return Video.model_validate(
        {
            "id": video_id,
            "title": f"Title {video_id}",
            "duration": "30:00",
            "instructor": "Dr. Ada",
            "category": "Programming",
            "date_added": "2024-03-01T00:00:00+00:00",
            **fields,
        }
    )


def _add(store: LibraryStore, title: str, **fields: Any) -> Video:
    return store.add_video(
        {
            "title": title,
            "duration": "30:00",
            "instructor": "Dr. Ada",
            "category": "Programming",
            **fields,
        }
    )


def test_derive_playlists_groups_by_source_instructor_and_category() -> None:
    videos = [
        _video("v1"),
        _video("v2", completed=True, progress_percent=100),
        _video("v3", category="Mathematics"),
        _video("v4", source="youtube-playlist", playlist_title="Rust Course", original_url="u"),
    ]

    playlists = derive_playlists(videos)

    assert [playlist.key for playlist in playlists] == [
        PlaylistKey("manual", "Dr. Ada", "Programming"),
        PlaylistKey("manual", "Dr. Ada", "Mathematics"),
        PlaylistKey("youtube-playlist", "Dr. Ada", "Programming"),
    ]
    first = playlists[0]
    assert first.title == "Dr. Ada - Programming"
    assert first.video_ids == ("v1", "v2")
    assert first.completed_videos == 1
    assert first.progress_percent == 50
    assert first.total_duration_minutes == 60
    assert playlists[2].title == "Rust Course"
    assert playlists[2].original_url == "u"


def test_derive_playlists_applies_stored_order_first() -> None:
    videos = [
        _video("v1", category="Programming"),
        _video("v2", category="Mathematics"),
        _video("v3", category="Science"),
    ]
    order = [
        PlaylistKey("manual", "Dr. Ada", "Science"),
        PlaylistKey("manual", "Nobody", "Gone"),
        PlaylistKey("manual", "Dr. Ada", "Programming"),
    ]

    playlists = derive_playlists(videos, order)

    assert [playlist.category for playlist in playlists] == ["Science", "Programming", "Mathematics"]


def test_compute_library_stats_rounds_half_up() -> None:
    videos = [
        _video("v1", completed=True, duration="45:00"),
        _video("v2", category="Mathematics"),
        _video("v3", category="Mathematics", completed=True),
        _video("v4", category="Science", completed=True, duration="1:00:00"),
        _video("v5", category="Language", duration="bad"),
        _video("v6", category="Business", duration="1:00"),
        _video("v7", category="Video Editing", duration="1:00"),
        _video("v8", category="Physics", duration="1:00"),
    ]

    stats = compute_library_stats(videos)

    assert stats == LibraryStats(
        total_playlists=7,
        completed_playlists=2,
        study_hours=2.3,
        completion_rate=29,
    )


def test_compute_library_stats_on_empty_library() -> None:
    assert compute_library_stats([]) == LibraryStats(
        total_playlists=0,
        completed_playlists=0,
        study_hours=0.0,
        completion_rate=0,
    )


def test_remove_playlist_cascades_engagement(store: LibraryStore) -> None:
    members = [_add(store, f"Part {index}", category="Mathematics") for index in range(5)]
    survivor = _add(store, "Elsewhere", category="Science")
    for video in members[:2]:
        store.toggle_favorite(video.id)
    for video in members[:3]:
        store.add_note(video.id, 10, "remember")
    store.add_bookmark(members[4].id, 20, "key point")
    store.add_to_watch_history(members[0].id)
    store.toggle_favorite(survivor.id)
    key = PlaylistKey("manual", "Dr. Ada", "Mathematics")
    store.set_playlist_order([key, PlaylistKey.for_video(survivor)])
    deriver = PlaylistDeriver(store)

    removed = deriver.remove_playlist(key)

    assert len(removed) == 5
    assert [video.id for video in store.videos] == [survivor.id]
    assert store.favorites == (survivor.id,)
    assert store.watch_history == ()
    assert store.notes == {}
    assert store.bookmarks == {}
    assert store.playlist_order == (PlaylistKey.for_video(survivor),)
    assert deriver.find_playlist(key) is None
    assert deriver.delete_playlist(key) is False


def test_reorder_playlist_clamps_target_index(store: LibraryStore) -> None:
    for category in ("Programming", "Mathematics", "Science"):
        _add(store, category, category=category)
    deriver = PlaylistDeriver(store)
    science = PlaylistKey("manual", "Dr. Ada", "Science")

    assert deriver.reorder_playlist(science, 0) is True
    assert [playlist.category for playlist in deriver.derive_playlists()] == [
        "Science",
        "Programming",
        "Mathematics",
    ]

    assert deriver.reorder_playlist(science, 99) is True
    assert [playlist.category for playlist in deriver.derive_playlists()] == [
        "Programming",
        "Mathematics",
        "Science",
    ]

    assert deriver.reorder_playlist(PlaylistKey("manual", "Nobody", "Gone"), 0) is False


def test_deriver_stats_follow_store(store: LibraryStore) -> None:
    video = _add(store, "Only")
    store.update_video(video.id, {"completed": True})

    assert PlaylistDeriver(store).stats() == LibraryStats(
        total_playlists=1,
        completed_playlists=1,
        study_hours=0.5,
        completion_rate=100,
    )
