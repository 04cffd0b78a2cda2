"""Typed views over the loosely-shaped YouTube Data API v3 responses.

Only fields the importer reads are declared; everything else is ignored.
Required fields are the ones without which an item cannot become a video.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

VIDEO_RESOURCE_KIND = "youtube#video"
UNAVAILABLE_VIDEO_TITLES: frozenset[str] = frozenset({"Private video", "Deleted video"})


class _PayloadModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ThumbnailPayload(_PayloadModel):
    url: str


class ThumbnailSetPayload(_PayloadModel):
    default: ThumbnailPayload | None = None
    medium: ThumbnailPayload | None = None
    high: ThumbnailPayload | None = None

    def preferred_url(self) -> str | None:
        for thumbnail in (self.medium, self.default, self.high):
            if thumbnail is not None and thumbnail.url:
                return thumbnail.url
        return None


class StatusPayload(_PayloadModel):
    privacy_status: str = "public"


class PlaylistSnippetPayload(_PayloadModel):
    title: str
    description: str = ""
    channel_id: str | None = None
    channel_title: str = ""
    published_at: str | None = None
    thumbnails: ThumbnailSetPayload = Field(default_factory=ThumbnailSetPayload)


class PlaylistContentDetailsPayload(_PayloadModel):
    item_count: int = 0


class PlaylistPayload(_PayloadModel):
    id: str
    snippet: PlaylistSnippetPayload
    status: StatusPayload = Field(default_factory=StatusPayload)
    content_details: PlaylistContentDetailsPayload = Field(
        default_factory=PlaylistContentDetailsPayload
    )

    @property
    def is_private(self) -> bool:
        return self.status.privacy_status == "private"


class ResourceIdPayload(_PayloadModel):
    kind: str
    video_id: str | None = None


class PlaylistItemSnippetPayload(_PayloadModel):
    title: str
    description: str = ""
    position: int | None = None
    published_at: str | None = None
    video_owner_channel_title: str | None = None
    resource_id: ResourceIdPayload
    thumbnails: ThumbnailSetPayload = Field(default_factory=ThumbnailSetPayload)


class PlaylistItemPayload(_PayloadModel):
    snippet: PlaylistItemSnippetPayload
    status: StatusPayload = Field(default_factory=StatusPayload)

    @property
    def video_id(self) -> str | None:
        return self.snippet.resource_id.video_id

    @property
    def is_public_video(self) -> bool:
        if self.snippet.resource_id.kind != VIDEO_RESOURCE_KIND:
            return False
        if not self.video_id:
            return False
        if self.snippet.title in UNAVAILABLE_VIDEO_TITLES:
            return False
        return self.status.privacy_status != "private"


class VideoSnippetPayload(_PayloadModel):
    title: str | None = None
    published_at: str | None = None


class VideoContentDetailsPayload(_PayloadModel):
    duration: str | None = None


class VideoPayload(_PayloadModel):
    id: str
    snippet: VideoSnippetPayload = Field(default_factory=VideoSnippetPayload)
    content_details: VideoContentDetailsPayload = Field(default_factory=VideoContentDetailsPayload)
