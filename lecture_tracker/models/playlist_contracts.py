from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator, model_validator

from lecture_tracker.models.library import CamelModel, VideoSource


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


class PlaylistInfo(CamelModel):
    id: str
    title: str
    description: str = ""
    channel_title: str = ""
    channel_id: str | None = None
    video_count: int = 0
    total_duration: str = "0m"
    published_at: str | None = None
    thumbnail_url: str | None = None
    url: str
    privacy_status: str = "public"


class FetchedVideo(CamelModel):
    """One playlist entry as aggregated by an import, before it enters a library."""

    external_video_id: str
    title: str
    description: str = ""
    duration: str = "0:00"
    instructor: str = ""
    source_url: str
    thumbnail_url: str | None = None
    published_at: str | None = None
    position: int
    original_index: int


class PlaylistFetchResponse(CamelModel):
    playlist_info: PlaylistInfo
    videos: list[FetchedVideo]


class HealthResponse(CamelModel):
    status: Literal["ok"] = "ok"
    has_api_key: bool
    timestamp: str


class ExtractPlaylistIdRequest(CamelModel):
    url: str | None = Field(default=None, max_length=2048)

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, value: object) -> str | None:
        return _normalize_optional_text(value)


class ExtractPlaylistIdResponse(CamelModel):
    playlist_id: str


class ImportPlaylistRequest(CamelModel):
    url: str | None = Field(default=None, max_length=2048)
    playlist_id: str | None = Field(default=None, max_length=200)
    category: str | None = Field(default=None, max_length=120)

    @field_validator("url", "playlist_id", "category", mode="before")
    @classmethod
    def _normalize_optional_fields(cls, value: object) -> str | None:
        return _normalize_optional_text(value)

    @model_validator(mode="after")
    def _require_reference(self) -> ImportPlaylistRequest:
        if self.url is None and self.playlist_id is None:
            raise ValueError("either url or playlistId is required")
        return self

    @property
    def reference(self) -> str:
        return self.playlist_id or self.url or ""


class ImportPlaylistResponse(CamelModel):
    playlist_info: PlaylistInfo
    imported_count: int


class PlaylistKeyBody(CamelModel):
    source: VideoSource
    instructor: str = Field(max_length=500)
    category: str = Field(min_length=1, max_length=120)


class DeletePlaylistResponse(CamelModel):
    deleted: bool
    removed_videos: int


class ReorderPlaylistRequest(CamelModel):
    key: PlaylistKeyBody
    target_index: int = Field(ge=0)


class PlaylistSummary(CamelModel):
    title: str
    instructor: str
    category: str
    source: str
    original_url: str
    playlist_id: str | None = None
    import_date: str
    total_videos: int
    completed_videos: int
    progress_percent: int
    total_duration_minutes: float
    total_duration: str


class PlaylistListResponse(CamelModel):
    playlists: list[PlaylistSummary]


class LibraryStatsResponse(CamelModel):
    total_playlists: int
    completed_playlists: int
    study_hours: float
    completion_rate: int
    current_streak: int
    longest_streak: int
    streak_message: str
    total_videos: int


class CloseSessionResponse(CamelModel):
    closed: bool
