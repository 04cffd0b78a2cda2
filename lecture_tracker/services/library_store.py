from __future__ import annotations

import logging
import math
import sqlite3
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime
from threading import RLock
from typing import Any
from urllib.parse import quote
from uuid import uuid4

from pydantic import ValidationError

from lecture_tracker.models.library import (
    ALL_CATEGORY,
    SEED_CATEGORIES,
    ActivityType,
    Annotation,
    LibraryStats,
    PlaylistKey,
    Video,
)
from lecture_tracker.repositories.library_state_repository import LibraryStateRepository
from lecture_tracker.repositories.stats_mirror_repository import StatsMirror
from lecture_tracker.services.playlist_deriver import compute_library_stats
from lecture_tracker.services.playlist_fetcher import PlaylistImportResult
from lecture_tracker.telemetry import TelemetryClient

LOGGER = logging.getLogger("lecture_tracker.library")

GUEST_SCOPE = "guest"
DAILY_ACTIVITY_CAP = 15
WATCH_HISTORY_LIMIT = 20
RECENTLY_WATCHED_WINDOW = 3
RECENT_ACTIVITY_LIMIT = 50
PROGRESS_MILESTONE_PERCENT = 25
NOTE_PREVIEW_LENGTH = 50

COLLECTION_VIDEOS = "videos"
COLLECTION_CATEGORIES = "categories"
COLLECTION_FAVORITES = "favorites"
COLLECTION_WATCH_HISTORY = "watchHistory"
COLLECTION_NOTES = "notes"
COLLECTION_BOOKMARKS = "bookmarks"
COLLECTION_DAILY_ACTIVITY = "dailyActivity"
COLLECTION_DAILY_COMPLETED = "dailyCompletedVideos"
COLLECTION_RECENT_ACTIVITIES = "recentActivities"
COLLECTION_PLAYLIST_ORDER = "playlistOrder"
COLLECTIONS: tuple[str, ...] = (
    COLLECTION_VIDEOS,
    COLLECTION_CATEGORIES,
    COLLECTION_FAVORITES,
    COLLECTION_WATCH_HISTORY,
    COLLECTION_NOTES,
    COLLECTION_BOOKMARKS,
    COLLECTION_DAILY_ACTIVITY,
    COLLECTION_DAILY_COMPLETED,
    COLLECTION_RECENT_ACTIVITIES,
    COLLECTION_PLAYLIST_ORDER,
)

PLACEHOLDER_THUMBNAIL_COLOURS: dict[str, str] = {
    "Programming": "3b82f6",
    "Mathematics": "10b981",
    "Science": "8b5cf6",
    "Language": "f59e0b",
    "Video Editing": "8b5cf6",
}
DEFAULT_THUMBNAIL_COLOUR = "ef4444"

_SYSTEM_FIELDS = frozenset({"id", "date_added", "progress_percent", "completed"})


def _video_field_names() -> dict[str, str]:
    names: dict[str, str] = {}
    for name, info in Video.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


_FIELD_NAMES = _video_field_names()


class LibraryValidationError(ValueError):
    pass


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def placeholder_thumbnail_url(category: str, title: str) -> str:
    colour = PLACEHOLDER_THUMBNAIL_COLOURS.get(category, DEFAULT_THUMBNAIL_COLOUR)
    label = quote(title[:20] or "Video", safe="")
    return f"https://via.placeholder.com/320x180/{colour}/ffffff?text={label}"


class LibraryStore:
    """In-memory library for one user scope, persisted one collection at a time.

    Every mutation rewrites the touched collection under
    ``{collection}_{user_id|guest}``. Nothing is written until :meth:`load` has
    run, so defaults never overwrite state that has not been read yet.
    Persistence and stats-mirror failures are logged and swallowed; the
    in-memory state stays authoritative.
    """

    def __init__(
        self,
        *,
        user_id: str | None,
        state_repository: LibraryStateRepository | None = None,
        stats_mirror: StatsMirror | None = None,
        telemetry: TelemetryClient | None = None,
        default_category: str = "Programming",
        mirror_enabled: bool = True,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[str], str] = _new_id,
    ) -> None:
        self._user_id = user_id
        self._state_repository = state_repository
        self._stats_mirror = stats_mirror
        self._telemetry = telemetry or TelemetryClient.disabled()
        self._default_category = default_category
        self._mirror_enabled = mirror_enabled
        self._clock = clock
        self._id_factory = id_factory
        self.lock = RLock()
        self._initialized = False
        self._reset_state()

    def _reset_state(self) -> None:
        self._videos: list[Video] = []
        self._categories: list[str] = list(SEED_CATEGORIES)
        self._favorites: list[str] = []
        self._watch_history: list[str] = []
        self._notes: dict[str, list[Annotation]] = {}
        self._bookmarks: dict[str, list[Annotation]] = {}
        self._daily_activity: dict[str, int] = {}
        self._daily_completed: dict[str, list[str]] = {}
        self._recent_activities: list[dict[str, Any]] = []
        self._playlist_order: list[PlaylistKey] = []
        self._selected_category = ALL_CATEGORY

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def scope(self) -> str:
        return self._user_id or GUEST_SCOPE

    @property
    def is_guest(self) -> bool:
        return self._user_id is None

    @property
    def initialized(self) -> bool:
        return self._initialized

    def storage_key(self, collection: str) -> str:
        return f"{collection}_{self.scope}"

    # Session lifecycle

    def load(self) -> None:
        with self.lock:
            self._reset_state()
            self._videos = _parse_videos(self._read(COLLECTION_VIDEOS))
            self._categories = _parse_categories(self._read(COLLECTION_CATEGORIES))
            self._favorites = _parse_id_list(self._read(COLLECTION_FAVORITES))
            self._watch_history = _parse_id_list(self._read(COLLECTION_WATCH_HISTORY))[
                :WATCH_HISTORY_LIMIT
            ]
            self._notes = _parse_annotations(self._read(COLLECTION_NOTES))
            self._bookmarks = _parse_annotations(self._read(COLLECTION_BOOKMARKS))
            self._daily_activity = _parse_daily_activity(self._read(COLLECTION_DAILY_ACTIVITY))
            self._daily_completed = _parse_daily_completed(self._read(COLLECTION_DAILY_COMPLETED))
            self._recent_activities = dedupe_recent_activities(
                _parse_activity_list(self._read(COLLECTION_RECENT_ACTIVITIES))
            )
            self._playlist_order = _parse_playlist_order(self._read(COLLECTION_PLAYLIST_ORDER))
            self._initialized = True

        LOGGER.info(
            "library loaded scope=%s videos=%s categories=%s",
            self.scope,
            len(self._videos),
            len(self._categories),
        )

    def clear(self) -> None:
        with self.lock:
            self._reset_state()
            self._initialized = False
        LOGGER.info("library cleared scope=%s", self.scope)

    # Read views

    @property
    def videos(self) -> tuple[Video, ...]:
        return tuple(self._videos)

    def get_video(self, video_id: str) -> Video | None:
        for video in self._videos:
            if video.id == video_id:
                return video
        return None

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(self._categories)

    @property
    def selected_category(self) -> str:
        return self._selected_category

    def filtered_videos(self) -> tuple[Video, ...]:
        if self._selected_category == ALL_CATEGORY:
            return self.videos
        return tuple(video for video in self._videos if video.category == self._selected_category)

    @property
    def favorites(self) -> tuple[str, ...]:
        return tuple(self._favorites)

    @property
    def watch_history(self) -> tuple[str, ...]:
        return tuple(self._watch_history)

    def notes_for(self, video_id: str) -> tuple[Annotation, ...]:
        return tuple(self._notes.get(video_id, ()))

    def bookmarks_for(self, video_id: str) -> tuple[Annotation, ...]:
        return tuple(self._bookmarks.get(video_id, ()))

    @property
    def notes(self) -> dict[str, tuple[Annotation, ...]]:
        return {video_id: tuple(entries) for video_id, entries in self._notes.items()}

    @property
    def bookmarks(self) -> dict[str, tuple[Annotation, ...]]:
        return {video_id: tuple(entries) for video_id, entries in self._bookmarks.items()}

    @property
    def daily_activity(self) -> dict[str, int]:
        return dict(self._daily_activity)

    @property
    def daily_completed_videos(self) -> dict[str, tuple[str, ...]]:
        return {day: tuple(video_ids) for day, video_ids in self._daily_completed.items()}

    @property
    def recent_activities(self) -> list[dict[str, Any]]:
        return [dict(activity) for activity in self._recent_activities]

    @property
    def playlist_order(self) -> tuple[PlaylistKey, ...]:
        return tuple(self._playlist_order)

    def compute_stats(self) -> LibraryStats:
        return compute_library_stats(self._videos)

    # Videos

    def add_video(self, fields: Mapping[str, Any]) -> Video:
        with self.lock:
            video = self._build_video(fields)
            self._videos.append(video)
            self._videos_changed()
        LOGGER.info("library video_added scope=%s video_id=%s", self.scope, video.id)
        return video

    def add_bulk_videos(self, items: Sequence[Mapping[str, Any]]) -> list[Video]:
        if not items:
            return []

        with self.lock:
            new_videos = [self._build_video(fields) for fields in items]
            self._videos.extend(new_videos)
            first = new_videos[0]
            self._add_recent_activity(
                "playlist_imported",
                playlistName=first.playlist_title or f"{first.instructor} - {first.category}",
                videoCount=len(new_videos),
                instructor=first.instructor,
                category=first.category,
                source=first.source,
            )
            self._videos_changed()

        LOGGER.info("library bulk_added scope=%s count=%s", self.scope, len(new_videos))
        return new_videos

    def import_playlist(
        self,
        result: PlaylistImportResult,
        category: str | None = None,
    ) -> list[Video]:
        target_category = (category or "").strip()
        if not target_category or target_category == ALL_CATEGORY:
            target_category = self._default_category

        with self.lock:
            if target_category not in self._categories:
                self.add_category(target_category)
            return self.add_bulk_videos(result.to_video_fields(target_category))

    def update_video(self, video_id: str, updates: Mapping[str, Any]) -> Video | None:
        normalized = _normalize_field_names(updates)
        if "id" in normalized:
            raise LibraryValidationError("video id cannot be changed")

        with self.lock:
            index = self._index_of(video_id)
            if index is None:
                return None

            previous = self._videos[index]
            merged = previous.model_dump(exclude={"duration_seconds"})
            merged.update(normalized)
            try:
                updated = Video.model_validate(merged)
            except ValidationError as exc:
                raise LibraryValidationError(str(exc)) from exc
            self._videos[index] = updated

            newly_completed = updated.completed and not previous.completed
            progress_changed = updated.progress_percent != previous.progress_percent
            if newly_completed:
                self._track_completed_video(updated.id)
                self._add_recent_activity(
                    "video_completed",
                    **_video_details(updated),
                    duration=updated.duration,
                )
            elif progress_changed:
                previous_milestone = int(previous.progress_percent // PROGRESS_MILESTONE_PERCENT)
                new_milestone = int(updated.progress_percent // PROGRESS_MILESTONE_PERCENT)
                if new_milestone > previous_milestone and new_milestone > 0:
                    self._add_recent_activity(
                        "video_progress",
                        **_video_details(updated),
                        progress=updated.progress_percent,
                        milestone=new_milestone * PROGRESS_MILESTONE_PERCENT,
                    )
            if newly_completed or progress_changed:
                self._track_daily_activity()
            self._videos_changed()

        return updated

    def delete_video(self, video_id: str) -> bool:
        """Remove one video; its favorites, history, notes and bookmarks are kept."""
        return bool(self.remove_videos([video_id], cascade=False))

    def remove_videos(self, video_ids: Iterable[str], *, cascade: bool) -> tuple[Video, ...]:
        doomed = set(video_ids)
        with self.lock:
            removed = tuple(video for video in self._videos if video.id in doomed)
            if not removed:
                return ()

            self._videos = [video for video in self._videos if video.id not in doomed]
            if cascade:
                self._cascade_video_removal(doomed)
            self._videos_changed()

        LOGGER.info(
            "library videos_removed scope=%s count=%s cascade=%s",
            self.scope,
            len(removed),
            cascade,
        )
        return removed

    def _cascade_video_removal(self, video_ids: set[str]) -> None:
        favorites = [video_id for video_id in self._favorites if video_id not in video_ids]
        if len(favorites) != len(self._favorites):
            self._favorites = favorites
            self._persist(COLLECTION_FAVORITES)

        history = [video_id for video_id in self._watch_history if video_id not in video_ids]
        if len(history) != len(self._watch_history):
            self._watch_history = history
            self._persist(COLLECTION_WATCH_HISTORY)

        if any(video_id in self._notes for video_id in video_ids):
            for video_id in video_ids:
                self._notes.pop(video_id, None)
            self._persist(COLLECTION_NOTES)

        if any(video_id in self._bookmarks for video_id in video_ids):
            for video_id in video_ids:
                self._bookmarks.pop(video_id, None)
            self._persist(COLLECTION_BOOKMARKS)

    # Engagement

    def toggle_favorite(self, video_id: str) -> bool:
        """Flip favorite membership and return whether the video is now a favorite."""
        with self.lock:
            video = self.get_video(video_id)
            if video_id in self._favorites:
                self._favorites = [existing for existing in self._favorites if existing != video_id]
                is_favorite = False
                if video is not None:
                    self._add_recent_activity("favorite_removed", **_video_details(video))
            else:
                self._favorites.append(video_id)
                is_favorite = True
                if video is not None:
                    self._add_recent_activity("favorite_added", **_video_details(video))
                    self._track_daily_activity()
            self._persist(COLLECTION_FAVORITES)
        return is_favorite

    def add_to_watch_history(self, video_id: str) -> None:
        with self.lock:
            recently_watched = video_id in self._watch_history[:RECENTLY_WATCHED_WINDOW]
            history = [existing for existing in self._watch_history if existing != video_id]
            self._watch_history = [video_id, *history][:WATCH_HISTORY_LIMIT]

            video = self.get_video(video_id)
            if not recently_watched and video is not None:
                self._add_recent_activity(
                    "video_watched",
                    **_video_details(video),
                    duration=video.duration,
                )
                self._track_daily_activity()
            self._persist(COLLECTION_WATCH_HISTORY)

    def add_note(self, video_id: str, timestamp: float, text: str) -> Annotation:
        with self.lock:
            note = self._new_annotation(timestamp, text)
            self._notes.setdefault(video_id, []).append(note)

            video = self.get_video(video_id)
            if video is not None:
                preview = text[:NOTE_PREVIEW_LENGTH]
                if len(text) > NOTE_PREVIEW_LENGTH:
                    preview += "..."
                self._add_recent_activity(
                    "note_added",
                    **_video_details(video),
                    notePreview=preview,
                    videoTimestamp=timestamp,
                )
                self._track_daily_activity()
            self._persist(COLLECTION_NOTES)
        return note

    def update_note(
        self,
        video_id: str,
        note_id: str,
        *,
        text: str | None = None,
        timestamp: float | None = None,
    ) -> Annotation | None:
        with self.lock:
            entries = self._notes.get(video_id, [])
            for index, existing in enumerate(entries):
                if existing.id != note_id:
                    continue
                changes: dict[str, Any] = {"updated_at": self._now_iso()}
                if text is not None:
                    changes["text"] = text
                if timestamp is not None:
                    if timestamp < 0:
                        raise LibraryValidationError("timestamp must be non-negative")
                    changes["timestamp"] = timestamp
                updated = existing.model_copy(update=changes)
                entries[index] = updated
                self._persist(COLLECTION_NOTES)
                return updated
        return None

    def delete_note(self, video_id: str, note_id: str) -> bool:
        return self._delete_annotation(self._notes, COLLECTION_NOTES, video_id, note_id)

    def add_bookmark(self, video_id: str, timestamp: float, text: str) -> Annotation:
        with self.lock:
            bookmark = self._new_annotation(timestamp, text)
            self._bookmarks.setdefault(video_id, []).append(bookmark)

            video = self.get_video(video_id)
            if video is not None:
                self._add_recent_activity(
                    "bookmark_added",
                    **_video_details(video),
                    bookmarkTitle=text,
                    videoTimestamp=timestamp,
                )
                self._track_daily_activity()
            self._persist(COLLECTION_BOOKMARKS)
        return bookmark

    def delete_bookmark(self, video_id: str, bookmark_id: str) -> bool:
        return self._delete_annotation(
            self._bookmarks, COLLECTION_BOOKMARKS, video_id, bookmark_id
        )

    def _delete_annotation(
        self,
        collection: dict[str, list[Annotation]],
        collection_name: str,
        video_id: str,
        annotation_id: str,
    ) -> bool:
        with self.lock:
            entries = collection.get(video_id)
            if not entries:
                return False
            remaining = [entry for entry in entries if entry.id != annotation_id]
            if len(remaining) == len(entries):
                return False
            collection[video_id] = remaining
            self._persist(collection_name)
        return True

    def _new_annotation(self, timestamp: float, text: str) -> Annotation:
        try:
            return Annotation(
                id=self._id_factory("ann"),
                timestamp=timestamp,
                text=text,
                created_at=self._now_iso(),
            )
        except ValidationError as exc:
            raise LibraryValidationError(str(exc)) from exc

    # Categories

    def add_category(self, name: str) -> bool:
        trimmed = name.strip()
        with self.lock:
            if not trimmed or trimmed in self._categories:
                return False
            self._categories.append(trimmed)
            self._persist(COLLECTION_CATEGORIES)
        LOGGER.info("library category_added scope=%s", self.scope)
        return True

    def edit_category(self, old_name: str, new_name: str) -> bool:
        trimmed = new_name.strip()
        with self.lock:
            if not trimmed or old_name == ALL_CATEGORY:
                return False
            if old_name not in self._categories or trimmed in self._categories:
                return False

            self._categories = [trimmed if name == old_name else name for name in self._categories]
            self._reassign_category(old_name, trimmed)
            if self._selected_category == old_name:
                self._selected_category = trimmed
            self._persist(COLLECTION_CATEGORIES)
        return True

    def delete_category(self, name: str) -> bool:
        with self.lock:
            if name in (ALL_CATEGORY, self._default_category) or name not in self._categories:
                return False

            self._categories = [existing for existing in self._categories if existing != name]
            moved = self._reassign_category(name, self._default_category)
            if moved and self._default_category not in self._categories:
                self._categories.append(self._default_category)
            if self._selected_category == name:
                self._selected_category = ALL_CATEGORY
            self._persist(COLLECTION_CATEGORIES)
        return True

    def select_category(self, name: str) -> bool:
        with self.lock:
            if name not in self._categories:
                return False
            self._selected_category = name
        return True

    def _reassign_category(self, old_name: str, new_name: str) -> int:
        moved = 0
        for index, video in enumerate(self._videos):
            if video.category == old_name:
                self._videos[index] = video.model_copy(update={"category": new_name})
                moved += 1

        renamed_order = [
            PlaylistKey(source=key.source, instructor=key.instructor, category=new_name)
            if key.category == old_name
            else key
            for key in self._playlist_order
        ]
        if renamed_order != self._playlist_order:
            self._playlist_order = list(dict.fromkeys(renamed_order))
            self._persist(COLLECTION_PLAYLIST_ORDER)

        if moved:
            self._videos_changed()
        return moved

    # Playlist display order

    def set_playlist_order(self, keys: Sequence[PlaylistKey]) -> None:
        with self.lock:
            self._playlist_order = list(dict.fromkeys(keys))
            self._persist(COLLECTION_PLAYLIST_ORDER)

    # Internals

    def _build_video(self, fields: Mapping[str, Any]) -> Video:
        normalized = {
            name: value
            for name, value in _normalize_field_names(fields).items()
            if name not in _SYSTEM_FIELDS
        }
        category = normalized.get("category")
        if not isinstance(category, str) or not category.strip() or category.strip() == ALL_CATEGORY:
            normalized["category"] = self._default_category

        title = normalized.get("title")
        if not normalized.get("thumbnail_url"):
            label = title if isinstance(title, str) else ""
            normalized["thumbnail_url"] = placeholder_thumbnail_url(
                str(normalized["category"]).strip(), label.strip()
            )

        try:
            return Video.model_validate(
                {
                    **normalized,
                    "id": self._id_factory("vid"),
                    "date_added": self._now_iso(),
                    "progress_percent": 0,
                    "completed": False,
                }
            )
        except ValidationError as exc:
            raise LibraryValidationError(str(exc)) from exc

    def _index_of(self, video_id: str) -> int | None:
        for index, video in enumerate(self._videos):
            if video.id == video_id:
                return index
        return None

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def _track_daily_activity(self) -> None:
        today = self._today()
        self._daily_activity[today] = min(self._daily_activity.get(today, 0) + 1, DAILY_ACTIVITY_CAP)
        self._persist(COLLECTION_DAILY_ACTIVITY)

    def _track_completed_video(self, video_id: str) -> None:
        completed_today = self._daily_completed.setdefault(self._today(), [])
        if video_id not in completed_today:
            completed_today.append(video_id)
            self._persist(COLLECTION_DAILY_COMPLETED)

    def _add_recent_activity(self, activity_type: ActivityType, **details: Any) -> None:
        activity: dict[str, Any] = {
            "id": self._id_factory("act"),
            "type": activity_type,
            "timestamp": self._now_iso(),
            **details,
        }
        video_id = details.get("videoId")
        existing = self._recent_activities
        if video_id is not None:
            existing = [entry for entry in existing if entry.get("videoId") != video_id]
        self._recent_activities = [activity, *existing][:RECENT_ACTIVITY_LIMIT]
        self._persist(COLLECTION_RECENT_ACTIVITIES)

    def _videos_changed(self) -> None:
        self._persist(COLLECTION_VIDEOS)
        self._mirror_stats()

    def _mirror_stats(self) -> None:
        if not self._initialized or self._user_id is None:
            return
        if not self._mirror_enabled or self._stats_mirror is None:
            return

        stats = compute_library_stats(self._videos)
        try:
            self._stats_mirror.push_stats(self._user_id, stats)
        except Exception as exc:
            LOGGER.exception("library stats_mirror_failed scope=%s", self.scope)
            self._telemetry.emit(
                "library.stats.mirror_failed",
                scope=self.scope,
                error_type=type(exc).__name__,
            )

    def _read(self, collection: str) -> Any | None:
        if self._state_repository is None:
            return None
        try:
            return self._state_repository.load_collection(self.storage_key(collection))
        except sqlite3.Error:
            LOGGER.exception(
                "library load_failed storage_key=%s",
                self.storage_key(collection),
            )
            return None

    def _persist(self, collection: str) -> None:
        if not self._initialized or self._state_repository is None:
            return
        try:
            self._state_repository.save_collection(
                self.storage_key(collection),
                self._serialize(collection),
            )
        except sqlite3.Error:
            LOGGER.exception(
                "library persist_failed storage_key=%s",
                self.storage_key(collection),
            )

    def _serialize(self, collection: str) -> Any:
        if collection == COLLECTION_VIDEOS:
            return [video.to_record() for video in self._videos]
        if collection == COLLECTION_CATEGORIES:
            return list(self._categories)
        if collection == COLLECTION_FAVORITES:
            return list(self._favorites)
        if collection == COLLECTION_WATCH_HISTORY:
            return list(self._watch_history)
        if collection == COLLECTION_NOTES:
            return _serialize_annotations(self._notes)
        if collection == COLLECTION_BOOKMARKS:
            return _serialize_annotations(self._bookmarks)
        if collection == COLLECTION_DAILY_ACTIVITY:
            return dict(self._daily_activity)
        if collection == COLLECTION_DAILY_COMPLETED:
            return {day: list(video_ids) for day, video_ids in self._daily_completed.items()}
        if collection == COLLECTION_RECENT_ACTIVITIES:
            return [dict(activity) for activity in self._recent_activities]
        if collection == COLLECTION_PLAYLIST_ORDER:
            return [key.to_record() for key in self._playlist_order]
        raise KeyError(collection)


def dedupe_recent_activities(activities: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Keep the newest entry per video plus every entry without a video, newest first."""
    latest_per_video: dict[str, dict[str, Any]] = {}
    other: list[dict[str, Any]] = []
    for activity in activities:
        video_id = activity.get("videoId")
        if video_id is None:
            other.append(dict(activity))
            continue
        key = str(video_id)
        current = latest_per_video.get(key)
        if current is None or str(activity.get("timestamp", "")) > str(current.get("timestamp", "")):
            latest_per_video[key] = dict(activity)

    merged = [*latest_per_video.values(), *other]
    merged.sort(key=lambda activity: str(activity.get("timestamp", "")), reverse=True)
    return merged[:RECENT_ACTIVITY_LIMIT]


def _video_details(video: Video) -> dict[str, Any]:
    return {
        "videoId": video.id,
        "videoTitle": video.title,
        "instructor": video.instructor,
        "category": video.category,
    }


def _normalize_field_names(fields: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for raw_name, value in fields.items():
        name = _FIELD_NAMES.get(raw_name)
        if name is None:
            raise LibraryValidationError(f"unknown video field: {raw_name}")
        normalized[name] = value
    return normalized


def _serialize_annotations(collection: Mapping[str, list[Annotation]]) -> dict[str, Any]:
    return {
        video_id: [entry.to_record() for entry in entries]
        for video_id, entries in collection.items()
    }


def _parse_videos(raw_value: object) -> list[Video]:
    if not isinstance(raw_value, list):
        return []
    videos: list[Video] = []
    for record in raw_value:
        try:
            videos.append(Video.model_validate(record))
        except ValidationError:
            LOGGER.warning("library dropped_stored_video reason=invalid_record")
    return videos


def _parse_categories(raw_value: object) -> list[str]:
    if not isinstance(raw_value, list):
        return list(SEED_CATEGORIES)
    categories = [
        name.strip() for name in raw_value if isinstance(name, str) and name.strip()
    ]
    categories = list(dict.fromkeys(categories))
    if ALL_CATEGORY not in categories:
        categories.insert(0, ALL_CATEGORY)
    return categories


def _parse_id_list(raw_value: object) -> list[str]:
    if not isinstance(raw_value, list):
        return []
    return list(dict.fromkeys(str(item) for item in raw_value if isinstance(item, str | int)))


def _parse_annotations(raw_value: object) -> dict[str, list[Annotation]]:
    if not isinstance(raw_value, dict):
        return {}
    parsed: dict[str, list[Annotation]] = {}
    for video_id, entries in raw_value.items():
        if not isinstance(entries, list):
            continue
        valid: list[Annotation] = []
        for entry in entries:
            try:
                valid.append(Annotation.model_validate(entry))
            except ValidationError:
                LOGGER.warning("library dropped_stored_annotation reason=invalid_record")
        parsed[str(video_id)] = valid
    return parsed


def _parse_daily_activity(raw_value: object) -> dict[str, int]:
    if not isinstance(raw_value, dict):
        return {}
    return {
        str(day): min(int(count), DAILY_ACTIVITY_CAP)
        for day, count in raw_value.items()
        if isinstance(count, int | float) and not isinstance(count, bool) and math.isfinite(count)
    }


def _parse_daily_completed(raw_value: object) -> dict[str, list[str]]:
    if not isinstance(raw_value, dict):
        return {}
    return {str(day): _parse_id_list(video_ids) for day, video_ids in raw_value.items()}


def _parse_activity_list(raw_value: object) -> list[dict[str, Any]]:
    if not isinstance(raw_value, list):
        return []
    return [dict(activity) for activity in raw_value if isinstance(activity, dict)]


def _parse_playlist_order(raw_value: object) -> list[PlaylistKey]:
    if not isinstance(raw_value, list):
        return []
    keys = [PlaylistKey.from_record(record) for record in raw_value]
    return list(dict.fromkeys(key for key in keys if key is not None))
