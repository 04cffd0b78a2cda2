from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from threading import Lock
from typing import Any, Protocol

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest

from lecture_tracker.services.import_errors import (
    AccessForbiddenError,
    ApiConfigurationError,
    InvalidInputError,
    PlaylistImportError,
    PlaylistNotFoundError,
    QuotaExceededError,
    TransientApiError,
    UnknownFetchError,
)
from lecture_tracker.services.sanitizer import validate_api_key

LOGGER = logging.getLogger("lecture_tracker.video_api")

PLAYLIST_PARTS = "snippet,contentDetails,status"
PLAYLIST_ITEM_PARTS = "snippet,contentDetails,status"
VIDEO_PARTS = "contentDetails,snippet"
MAX_IDS_PER_VIDEO_LOOKUP = 50

_QUOTA_MARKERS = (
    "quotaexceeded",
    "dailylimitexceeded",
    "ratelimitexceeded",
    "userratelimitexceeded",
    "quota",
    "rate limit exceeded",
)
_INVALID_KEY_MARKERS = (
    "keyinvalid",
    "api key not valid",
    "keyexpired",
)


class VideoApiClient(Protocol):
    @property
    def configured(self) -> bool:
        ...

    def get_playlist(self, playlist_id: str) -> dict[str, Any]:
        ...

    def list_playlist_items(
        self,
        playlist_id: str,
        *,
        page_token: str | None,
        page_size: int,
    ) -> dict[str, Any]:
        ...

    def list_videos(self, video_ids: Sequence[str]) -> dict[str, Any]:
        ...


ServiceFactory = Callable[[str, float], Any]


def _per_request_http_builder(timeout_seconds: float) -> Callable[..., HttpRequest]:
    """Request builder giving every API request its own ``httplib2.Http``.

    ``httplib2.Http`` is not thread-safe and the discovery service is shared
    by concurrent imports.
    """

    def _build_request(_shared_http: Any, *args: Any, **kwargs: Any) -> HttpRequest:
        return HttpRequest(httplib2.Http(timeout=timeout_seconds), *args, **kwargs)

    return _build_request


def _build_youtube_service(api_key: str, timeout_seconds: float) -> Any:
    return build(
        "youtube",
        "v3",
        developerKey=api_key,
        http=httplib2.Http(timeout=timeout_seconds),
        requestBuilder=_per_request_http_builder(timeout_seconds),
        cache_discovery=False,
    )


class GoogleVideoApiClient:
    """YouTube Data API v3 access with errors mapped onto the import taxonomy.

    Requests are executed exactly once; retrying transient failures is the
    caller's job.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout_seconds: float = 15,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._service_factory = service_factory or _build_youtube_service
        self._service: Any | None = None
        self._service_lock = Lock()

    @property
    def configured(self) -> bool:
        return validate_api_key(self._api_key)

    def get_playlist(self, playlist_id: str) -> dict[str, Any]:
        request = self._youtube().playlists().list(
            part=PLAYLIST_PARTS,
            id=playlist_id,
            maxResults=1,
        )
        return self._execute(request, operation="playlists.list")

    def list_playlist_items(
        self,
        playlist_id: str,
        *,
        page_token: str | None,
        page_size: int,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "part": PLAYLIST_ITEM_PARTS,
            "playlistId": playlist_id,
            "maxResults": page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        request = self._youtube().playlistItems().list(**params)
        return self._execute(request, operation="playlistItems.list")

    def list_videos(self, video_ids: Sequence[str]) -> dict[str, Any]:
        if len(video_ids) > MAX_IDS_PER_VIDEO_LOOKUP:
            raise ValueError(f"at most {MAX_IDS_PER_VIDEO_LOOKUP} video ids per lookup")
        request = self._youtube().videos().list(
            part=VIDEO_PARTS,
            id=",".join(video_ids),
            maxResults=len(video_ids),
        )
        return self._execute(request, operation="videos.list")

    def _youtube(self) -> Any:
        if not self.configured or self._api_key is None:
            raise ApiConfigurationError()
        with self._service_lock:
            if self._service is None:
                self._service = self._service_factory(self._api_key, self._timeout_seconds)
            return self._service

    def _execute(self, request: Any, *, operation: str) -> dict[str, Any]:
        try:
            response = request.execute(num_retries=0)
        except HttpError as exc:
            raise _translate_http_error(exc, operation=operation) from exc
        except TimeoutError as exc:
            raise TransientApiError(f"{operation} timed out", timed_out=True) from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise TransientApiError(f"{operation} failed: {exc}") from exc

        if not isinstance(response, dict):
            LOGGER.warning("video api unexpected_response operation=%s", operation)
            return {}
        return response


def _translate_http_error(exc: HttpError, *, operation: str) -> PlaylistImportError | TransientApiError:
    status = _http_error_status(exc)
    detail = _http_error_detail(exc)
    LOGGER.info(
        "video api http_error operation=%s status=%s",
        operation,
        status,
    )

    if status >= 500:
        return TransientApiError(
            f"{operation} upstream status {status}",
            timed_out=status == 504,
        )
    if status == 429:
        return QuotaExceededError()
    if status == 401 or any(marker in detail for marker in _INVALID_KEY_MARKERS):
        return ApiConfigurationError()
    if status == 400:
        return InvalidInputError()
    if status == 403:
        if any(marker in detail for marker in _QUOTA_MARKERS):
            return QuotaExceededError(
                "YouTube API quota limit reached. Please try again tomorrow or upgrade your quota."
            )
        return AccessForbiddenError("Invalid API key or insufficient permissions.")
    if status == 404:
        return PlaylistNotFoundError(
            "The playlist may be private, deleted, or the ID is incorrect."
        )
    return UnknownFetchError()


def _http_error_status(exc: HttpError) -> int:
    response = getattr(exc, "resp", None)
    raw_status = getattr(response, "status", None)
    try:
        return int(raw_status) if raw_status is not None else 500
    except (TypeError, ValueError):
        return 500


def _http_error_detail(exc: HttpError) -> str:
    fragments: list[str] = []
    error_details = getattr(exc, "error_details", None)
    if isinstance(error_details, list):
        for entry in error_details:
            if isinstance(entry, dict):
                fragments.extend(str(value) for value in entry.values())

    content = getattr(exc, "content", b"")
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if isinstance(content, str) and content:
        try:
            decoded = json.loads(content)
        except json.JSONDecodeError:
            fragments.append(content)
        else:
            fragments.append(json.dumps(decoded))
    return " ".join(fragments).lower()
