from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from lecture_tracker.services.durations import ZERO_DURATION, parse_display_duration_seconds

VideoSource = Literal["manual", "youtube-playlist"]
ActivityType = Literal[
    "playlist_imported",
    "video_completed",
    "video_progress",
    "video_watched",
    "favorite_added",
    "favorite_removed",
    "note_added",
    "bookmark_added",
]

ALL_CATEGORY = "All"
SEED_CATEGORIES: tuple[str, ...] = (
    ALL_CATEGORY,
    "Programming",
    "Mathematics",
    "Science",
    "Language",
    "Business",
    "Video Editing",
)


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Video(CamelModel):
    id: str
    title: str = Field(min_length=1, max_length=500)
    description: str = ""
    duration: str = ZERO_DURATION
    instructor: str = ""
    category: str = Field(min_length=1)
    source_url: str | None = None
    external_video_id: str | None = None
    thumbnail_url: str | None = None
    published_at: str | None = None
    position: int | None = None
    original_index: int | None = None
    progress_percent: float = Field(default=0, ge=0, le=100)
    completed: bool = False
    date_added: str
    source: VideoSource = "manual"
    playlist_title: str | None = None
    playlist_id: str | None = None
    original_url: str | None = None

    @field_validator("title", "category", mode="before")
    @classmethod
    def _strip_required_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _normalize_duration(cls, value: object) -> str:
        normalized = _normalize_optional_text(value)
        if normalized is None or parse_display_duration_seconds(normalized) is None:
            return ZERO_DURATION
        return normalized

    @field_validator(
        "source_url",
        "external_video_id",
        "thumbnail_url",
        "published_at",
        "playlist_title",
        "playlist_id",
        "original_url",
        mode="before",
    )
    @classmethod
    def _normalize_optional_fields(cls, value: object) -> str | None:
        return _normalize_optional_text(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration_seconds(self) -> int:
        return parse_display_duration_seconds(self.duration) or 0

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"duration_seconds"})


class Annotation(CamelModel):
    """A timestamped note or bookmark attached to a video."""

    id: str
    timestamp: float = Field(ge=0)
    text: str
    created_at: str
    updated_at: str | None = None

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class PlaylistKey:
    source: str
    instructor: str
    category: str

    @classmethod
    def for_video(cls, video: Video) -> PlaylistKey:
        return cls(source=video.source, instructor=video.instructor, category=video.category)

    def to_record(self) -> dict[str, str]:
        return {"source": self.source, "instructor": self.instructor, "category": self.category}

    @classmethod
    def from_record(cls, record: object) -> PlaylistKey | None:
        if not isinstance(record, dict):
            return None
        source = record.get("source")
        instructor = record.get("instructor")
        category = record.get("category")
        if not (isinstance(source, str) and isinstance(instructor, str) and isinstance(category, str)):
            return None
        return cls(source=source, instructor=instructor, category=category)


@dataclass(frozen=True)
class Playlist:
    key: PlaylistKey
    title: str
    original_url: str
    playlist_id: str | None
    import_date: str
    video_ids: tuple[str, ...]
    completed_videos: int
    total_duration_minutes: float

    @property
    def instructor(self) -> str:
        return self.key.instructor

    @property
    def category(self) -> str:
        return self.key.category

    @property
    def source(self) -> str:
        return self.key.source

    @property
    def total_videos(self) -> int:
        return len(self.video_ids)

    @property
    def is_completed(self) -> bool:
        return self.total_videos > 0 and self.completed_videos == self.total_videos

    @property
    def progress_percent(self) -> int:
        if self.total_videos == 0:
            return 0
        return round(self.completed_videos / self.total_videos * 100)


@dataclass(frozen=True)
class LibraryStats:
    total_playlists: int
    completed_playlists: int
    study_hours: float
    completion_rate: int
