from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lecture_tracker.models.library import LibraryStats, Playlist, PlaylistKey, Video
from lecture_tracker.services.durations import display_duration_minutes

if TYPE_CHECKING:
    from lecture_tracker.services.library_store import LibraryStore

LOGGER = logging.getLogger("lecture_tracker.playlists")


@dataclass
class _PlaylistAccumulator:
    key: PlaylistKey
    title: str
    original_url: str
    playlist_id: str | None
    import_date: str
    video_ids: list[str] = field(default_factory=list)
    completed_videos: int = 0
    total_duration_minutes: float = 0.0

    def freeze(self) -> Playlist:
        return Playlist(
            key=self.key,
            title=self.title,
            original_url=self.original_url,
            playlist_id=self.playlist_id,
            import_date=self.import_date,
            video_ids=tuple(self.video_ids),
            completed_videos=self.completed_videos,
            total_duration_minutes=self.total_duration_minutes,
        )


def derive_playlists(
    videos: Iterable[Video],
    order: Sequence[PlaylistKey] = (),
) -> list[Playlist]:
    """Group videos on (source, instructor, category) in a single pass.

    Keys listed in ``order`` come first in that order; the rest follow in the
    order their first video appears.
    """
    groups: dict[PlaylistKey, _PlaylistAccumulator] = {}
    for video in videos:
        key = PlaylistKey.for_video(video)
        group = groups.get(key)
        if group is None:
            group = _PlaylistAccumulator(
                key=key,
                title=video.playlist_title or f"{video.instructor} - {video.category}",
                original_url=video.original_url or "",
                playlist_id=video.playlist_id,
                import_date=video.date_added,
            )
            groups[key] = group

        group.video_ids.append(video.id)
        if video.completed:
            group.completed_videos += 1
        group.total_duration_minutes += display_duration_minutes(video.duration)

    ranked = {key: index for index, key in enumerate(order)}
    first_seen = {key: index for index, key in enumerate(groups)}
    ordered_keys = sorted(
        groups,
        key=lambda key: (
            0 if key in ranked else 1,
            ranked.get(key, 0),
            first_seen[key],
        ),
    )
    return [groups[key].freeze() for key in ordered_keys]


def compute_library_stats(videos: Sequence[Video]) -> LibraryStats:
    playlists = derive_playlists(videos)
    total_playlists = len(playlists)
    completed_playlists = sum(1 for playlist in playlists if playlist.is_completed)
    study_minutes = sum(
        display_duration_minutes(video.duration) for video in videos if video.completed
    )
    completion_rate = 0
    if total_playlists > 0:
        completion_rate = _round_half_up(completed_playlists / total_playlists * 100)
    return LibraryStats(
        total_playlists=total_playlists,
        completed_playlists=completed_playlists,
        study_hours=_round_half_up(study_minutes / 60 * 10) / 10,
        completion_rate=completion_rate,
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class PlaylistDeriver:
    """Playlist views and whole-playlist operations over one library."""

    def __init__(self, store: LibraryStore) -> None:
        self._store = store

    def derive_playlists(self) -> list[Playlist]:
        return derive_playlists(self._store.videos, self._store.playlist_order)

    def find_playlist(self, key: PlaylistKey) -> Playlist | None:
        for playlist in self.derive_playlists():
            if playlist.key == key:
                return playlist
        return None

    def stats(self) -> LibraryStats:
        return compute_library_stats(self._store.videos)

    def remove_playlist(self, key: PlaylistKey) -> tuple[Video, ...]:
        """Delete every video under ``key`` plus their favorites, history, notes and bookmarks."""
        with self._store.lock:
            video_ids = [
                video.id for video in self._store.videos if PlaylistKey.for_video(video) == key
            ]
            if not video_ids:
                LOGGER.info(
                    "playlist delete no_match source=%s category=%s",
                    key.source,
                    key.category,
                )
                return ()

            removed = self._store.remove_videos(video_ids, cascade=True)
            remaining_order = [existing for existing in self._store.playlist_order if existing != key]
            if len(remaining_order) != len(self._store.playlist_order):
                self._store.set_playlist_order(remaining_order)

        LOGGER.info(
            "playlist deleted source=%s category=%s removed_videos=%s",
            key.source,
            key.category,
            len(removed),
        )
        return removed

    def delete_playlist(self, key: PlaylistKey) -> bool:
        return bool(self.remove_playlist(key))

    def reorder_playlist(self, key: PlaylistKey, target_index: int) -> bool:
        with self._store.lock:
            current_order = [playlist.key for playlist in self.derive_playlists()]
            if key not in current_order:
                return False

            current_order.remove(key)
            clamped_index = max(0, min(target_index, len(current_order)))
            current_order.insert(clamped_index, key)
            self._store.set_playlist_order(current_order)
        return True
