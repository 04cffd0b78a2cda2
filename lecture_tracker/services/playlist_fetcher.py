from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from pydantic import ValidationError

from lecture_tracker.config import AppSettings
from lecture_tracker.models.playlist_contracts import FetchedVideo, PlaylistInfo
from lecture_tracker.models.youtube_payloads import (
    PlaylistItemPayload,
    PlaylistPayload,
    VideoPayload,
)
from lecture_tracker.services.durations import (
    ZERO_DURATION,
    display_duration_minutes,
    format_iso8601_duration,
    format_total_minutes,
)
from lecture_tracker.services.import_errors import (
    AccessForbiddenError,
    ApiConfigurationError,
    FetchTimeoutError,
    InvalidInputError,
    PlaylistImportError,
    PlaylistNotFoundError,
    TransientApiError,
    UnknownFetchError,
)
from lecture_tracker.services.sanitizer import embed_url, playlist_url, resolve_playlist_reference
from lecture_tracker.services.video_api import VideoApiClient
from lecture_tracker.telemetry import TelemetryClient

LOGGER = logging.getLogger("lecture_tracker.playlist_import")

ImportStage = Literal[
    "id_unresolved",
    "fetching_playlist_meta",
    "fetching_items",
    "fetching_details",
    "aggregated",
    "failed",
]
StageCallback = Callable[[ImportStage], None]

_T = TypeVar("_T")


@dataclass(frozen=True)
class PlaylistImportResult:
    playlist_info: PlaylistInfo
    videos: tuple[FetchedVideo, ...]
    pages_fetched: int
    degraded_batches: int

    def to_video_fields(self, category: str) -> list[dict[str, Any]]:
        """Shape the fetched videos as library video fields under ``category``."""
        return [
            {
                "title": video.title,
                "description": video.description,
                "duration": video.duration,
                "instructor": video.instructor,
                "category": category,
                "source_url": video.source_url,
                "external_video_id": video.external_video_id,
                "thumbnail_url": video.thumbnail_url,
                "published_at": video.published_at,
                "position": video.position,
                "original_index": video.original_index,
                "source": "youtube-playlist",
                "playlist_title": self.playlist_info.title,
                "playlist_id": self.playlist_info.id,
                "original_url": self.playlist_info.url,
            }
            for video in self.videos
        ]


class PlaylistFetcher:
    """Imports one playlist per call: metadata, item pages, then detail batches.

    Each upstream call is retried on transient failures only, sleeping
    ``backoff_base_seconds ** attempt`` between attempts. Pages are consumed in
    the order the API hands out page tokens, so the aggregated list follows
    playlist order.
    """

    def __init__(
        self,
        client: VideoApiClient,
        *,
        page_size: int = 50,
        max_pages: int = 20,
        detail_batch_size: int = 50,
        max_attempts: int = 3,
        backoff_base_seconds: float = 2,
        sleep: Callable[[float], None] = time.sleep,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._max_pages = max(1, max_pages)
        self._detail_batch_size = detail_batch_size
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_seconds = backoff_base_seconds
        self._sleep = sleep
        self._telemetry = telemetry or TelemetryClient.disabled()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        client: VideoApiClient,
        *,
        telemetry: TelemetryClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> PlaylistFetcher:
        return cls(
            client,
            page_size=settings.import_page_size,
            max_pages=settings.import_max_pages,
            detail_batch_size=settings.import_detail_batch_size,
            max_attempts=settings.import_max_attempts,
            backoff_base_seconds=settings.import_backoff_base_seconds,
            sleep=sleep,
            telemetry=telemetry,
        )

    def fetch(self, reference: str, *, on_stage: StageCallback | None = None) -> PlaylistImportResult:
        notify = on_stage or _ignore_stage
        notify("id_unresolved")

        with self._telemetry.span("playlist.import") as span_attributes:
            try:
                result = self._fetch(reference, notify)
            except PlaylistImportError as exc:
                notify("failed")
                span_attributes["error_kind"] = exc.kind
                LOGGER.info(
                    "playlist import failed kind=%s status_code=%s",
                    exc.kind,
                    exc.status_code,
                )
                raise
            except Exception as exc:
                notify("failed")
                span_attributes["error_kind"] = UnknownFetchError.kind
                LOGGER.exception("playlist import unexpected_failure")
                raise UnknownFetchError() from exc

            span_attributes.update(
                playlist_id=result.playlist_info.id,
                video_count=len(result.videos),
                pages_fetched=result.pages_fetched,
                degraded_batches=result.degraded_batches,
            )
        return result

    def _fetch(self, reference: str, notify: StageCallback) -> PlaylistImportResult:
        if not self._client.configured:
            raise ApiConfigurationError(
                "YouTube API key is not properly configured."
            )

        playlist_id = resolve_playlist_reference(reference)
        if playlist_id is None:
            raise InvalidInputError("Please provide a valid YouTube playlist ID or URL.")

        notify("fetching_playlist_meta")
        playlist = self._load_playlist(playlist_id)

        notify("fetching_items")
        items, pages_fetched = self._load_items(playlist_id)
        if not items:
            raise PlaylistNotFoundError(
                "This playlist contains no public videos.",
                title="No accessible videos",
            )

        notify("fetching_details")
        details, degraded_batches = self._load_details(
            [item.video_id for item in items if item.video_id]
        )

        videos = _aggregate_videos(playlist, items, details)
        total_minutes = sum(
            display_duration_minutes(video.duration)
            for video in videos
            if video.duration != ZERO_DURATION
        )
        playlist_info = PlaylistInfo(
            id=playlist_id,
            title=playlist.snippet.title,
            description=playlist.snippet.description,
            channel_title=playlist.snippet.channel_title,
            channel_id=playlist.snippet.channel_id,
            video_count=len(videos),
            total_duration=format_total_minutes(total_minutes),
            published_at=playlist.snippet.published_at,
            thumbnail_url=playlist.snippet.thumbnails.preferred_url(),
            url=playlist_url(playlist_id),
            privacy_status=playlist.status.privacy_status,
        )
        notify("aggregated")
        LOGGER.info(
            "playlist import aggregated playlist_id=%s videos=%s pages=%s degraded_batches=%s",
            playlist_id,
            len(videos),
            pages_fetched,
            degraded_batches,
        )
        return PlaylistImportResult(
            playlist_info=playlist_info,
            videos=tuple(videos),
            pages_fetched=pages_fetched,
            degraded_batches=degraded_batches,
        )

    def _load_playlist(self, playlist_id: str) -> PlaylistPayload:
        response = self._call_with_retry(
            "playlists.list",
            lambda: self._client.get_playlist(playlist_id),
        )
        raw_items = _as_list(response.get("items"))
        if not raw_items:
            raise PlaylistNotFoundError(
                "The playlist ID provided does not exist, is private, or has been deleted."
            )

        try:
            playlist = PlaylistPayload.model_validate(raw_items[0])
        except ValidationError as exc:
            raise UnknownFetchError("The video API returned an unreadable playlist.") from exc

        if playlist.is_private:
            raise AccessForbiddenError(
                "This playlist is private and cannot be accessed.",
                title="Private playlist",
            )
        return playlist

    def _load_items(self, playlist_id: str) -> tuple[list[PlaylistItemPayload], int]:
        items: list[PlaylistItemPayload] = []
        page_token: str | None = None
        pages_fetched = 0

        while pages_fetched < self._max_pages:
            token = page_token
            response = self._call_with_retry(
                "playlistItems.list",
                lambda: self._client.list_playlist_items(
                    playlist_id,
                    page_token=token,
                    page_size=self._page_size,
                ),
            )
            pages_fetched += 1
            items.extend(_parse_playlist_items(response.get("items")))
            page_token = _coerce_optional_str(response.get("nextPageToken"))
            if page_token is None:
                break

        if page_token is not None:
            LOGGER.warning(
                "playlist import page_cap_reached playlist_id=%s pages=%s items=%s",
                playlist_id,
                pages_fetched,
                len(items),
            )
        return items, pages_fetched

    def _load_details(self, video_ids: Sequence[str]) -> tuple[dict[str, VideoPayload], int]:
        details: dict[str, VideoPayload] = {}
        degraded_batches = 0

        for start in range(0, len(video_ids), self._detail_batch_size):
            batch = list(video_ids[start : start + self._detail_batch_size])
            try:
                response = self._call_with_retry(
                    "videos.list",
                    lambda: self._client.list_videos(batch),
                )
            except PlaylistImportError as exc:
                degraded_batches += 1
                LOGGER.warning(
                    "playlist import detail_batch_degraded offset=%s size=%s kind=%s",
                    start,
                    len(batch),
                    exc.kind,
                )
                continue

            for detail in _parse_video_details(response.get("items")):
                details[detail.id] = detail

        return details, degraded_batches

    def _call_with_retry(self, operation: str, call: Callable[[], _T]) -> _T:
        last_error: TransientApiError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return call()
            except TransientApiError as exc:
                last_error = exc
                if attempt >= self._max_attempts:
                    break
                delay_seconds = self._backoff_base_seconds**attempt
                LOGGER.warning(
                    "playlist import transient_failure operation=%s attempt=%s retry_in_seconds=%s",
                    operation,
                    attempt,
                    delay_seconds,
                )
                self._sleep(delay_seconds)

        LOGGER.warning(
            "playlist import retries_exhausted operation=%s attempts=%s",
            operation,
            self._max_attempts,
        )
        if last_error is not None and last_error.timed_out:
            raise FetchTimeoutError() from last_error
        raise UnknownFetchError(
            "The video API is temporarily unavailable. Please try again."
        ) from last_error


def _aggregate_videos(
    playlist: PlaylistPayload,
    items: Sequence[PlaylistItemPayload],
    details: dict[str, VideoPayload],
) -> list[FetchedVideo]:
    videos: list[FetchedVideo] = []
    for index, item in enumerate(items):
        video_id = item.video_id or ""
        detail = details.get(video_id)
        duration = ZERO_DURATION
        title = item.snippet.title
        published_at = item.snippet.published_at
        if detail is not None:
            duration = format_iso8601_duration(detail.content_details.duration)
            title = detail.snippet.title or title
            published_at = published_at or detail.snippet.published_at

        position = item.snippet.position if item.snippet.position is not None else index
        videos.append(
            FetchedVideo(
                external_video_id=video_id,
                title=title,
                description=item.snippet.description,
                duration=duration,
                instructor=item.snippet.video_owner_channel_title or playlist.snippet.channel_title,
                source_url=embed_url(video_id),
                thumbnail_url=item.snippet.thumbnails.preferred_url(),
                published_at=published_at,
                position=position,
                original_index=index + 1,
            )
        )
    return videos


def _parse_playlist_items(raw_items: object) -> list[PlaylistItemPayload]:
    parsed: list[PlaylistItemPayload] = []
    for raw_item in _as_list(raw_items):
        try:
            item = PlaylistItemPayload.model_validate(raw_item)
        except ValidationError as exc:
            LOGGER.warning(
                "playlist import dropped_item reason=invalid_payload errors=%s",
                exc.error_count(),
            )
            continue
        if item.is_public_video:
            parsed.append(item)
    return parsed


def _parse_video_details(raw_items: object) -> list[VideoPayload]:
    parsed: list[VideoPayload] = []
    for raw_item in _as_list(raw_items):
        try:
            parsed.append(VideoPayload.model_validate(raw_item))
        except ValidationError as exc:
            LOGGER.warning(
                "playlist import dropped_detail reason=invalid_payload errors=%s",
                exc.error_count(),
            )
    return parsed


def _as_list(value: object) -> list[Any]:
    if isinstance(value, list):
        return value
    return []


def _coerce_optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _ignore_stage(stage: ImportStage) -> None:
    _ = stage
