from __future__ import annotations

from typing import Any, Literal

ImportErrorKind = Literal[
    "invalid_input",
    "not_found",
    "forbidden",
    "quota_exceeded",
    "timeout",
    "rate_limited",
    "unknown",
]


class PlaylistImportError(Exception):
    """Base class for failures surfaced by a playlist import."""

    kind: ImportErrorKind = "unknown"
    status_code: int = 500
    title: str = "Internal server error"
    default_message: str = "An unexpected error occurred while fetching the playlist."

    def __init__(self, message: str | None = None, *, title: str | None = None) -> None:
        self.message = message or self.default_message
        if title is not None:
            self.title = title
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.title, "message": self.message}


class InvalidInputError(PlaylistImportError):
    kind = "invalid_input"
    status_code = 400
    title = "Invalid playlist ID"
    default_message = "The provided playlist ID or URL is not valid."


class PlaylistNotFoundError(PlaylistImportError):
    kind = "not_found"
    status_code = 404
    title = "Playlist not found"
    default_message = "The playlist does not exist or has no accessible videos."


class AccessForbiddenError(PlaylistImportError):
    kind = "forbidden"
    status_code = 403
    title = "Access forbidden"
    default_message = "Access to this playlist is restricted."


class ApiConfigurationError(AccessForbiddenError):
    status_code = 500
    title = "Invalid API configuration"
    default_message = "The video API key is missing or invalid."


class QuotaExceededError(PlaylistImportError):
    kind = "quota_exceeded"
    status_code = 403
    title = "API quota exceeded"
    default_message = "The video API quota has been exceeded. Please try again later."


class FetchTimeoutError(PlaylistImportError):
    kind = "timeout"
    status_code = 408
    title = "Request timeout"
    default_message = "The video API took too long to respond. Please try again."


class RateLimitedError(PlaylistImportError):
    kind = "rate_limited"
    status_code = 429
    title = "Too many requests"
    default_message = "Too many requests. Please try again later."

    def __init__(
        self,
        retry_after_seconds: int,
        message: str | None = None,
        *,
        title: str | None = None,
    ) -> None:
        super().__init__(message, title=title)
        self.retry_after_seconds = retry_after_seconds

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["retryAfterSeconds"] = self.retry_after_seconds
        return payload


class UnknownFetchError(PlaylistImportError):
    pass


class TransientApiError(Exception):
    """Retryable upstream failure (network, timeout or upstream 5xx)."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out
