"""Validation for untrusted ingestion input: API keys, playlist ids and source URLs.

Every function here is pure. Malformed input yields ``None`` or ``False`` and
never raises, so callers branch on the empty result.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

API_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{35,45}$")
PLACEHOLDER_API_KEYS: frozenset[str] = frozenset(
    {
        "your_api_key_here",
        "your-api-key-here",
        "YOUR_API_KEY_HERE",
        "YOUR_YOUTUBE_API_KEY",
        "changeme",
    }
)
ALLOWED_SOURCE_HOSTS: frozenset[str] = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
    }
)
PLAYLIST_ID_MIN_LENGTH = 10
PLAYLIST_ID_MAX_LENGTH = 50
_PLAYLIST_ID_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_PLAYLIST_LIST_PARAM = re.compile(r"[?&]list=([^#&?]*)")


def validate_api_key(key: object) -> bool:
    if not isinstance(key, str):
        return False
    if key in PLACEHOLDER_API_KEYS:
        return False
    return API_KEY_PATTERN.fullmatch(key) is not None


def sanitize_playlist_id(raw: object) -> str | None:
    if not isinstance(raw, str) or not raw:
        return None
    sanitized = _PLAYLIST_ID_DISALLOWED_CHARS.sub("", raw)
    if PLAYLIST_ID_MIN_LENGTH <= len(sanitized) <= PLAYLIST_ID_MAX_LENGTH:
        return sanitized
    return None


def sanitize_source_url(raw: object) -> str | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    candidate = raw.strip()
    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
    except ValueError:
        return None
    if parts.scheme not in {"http", "https"} or hostname is None:
        return None
    if hostname.lower() not in ALLOWED_SOURCE_HOSTS:
        return None
    return candidate


def extract_playlist_id(url: object) -> str | None:
    if not isinstance(url, str) or not url:
        return None
    matched = _PLAYLIST_LIST_PARAM.search(url)
    if matched is None:
        return None
    return sanitize_playlist_id(matched.group(1))


def resolve_playlist_reference(raw: object) -> str | None:
    """Accept either a bare playlist id or an allow-listed playlist URL."""
    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if "://" in candidate:
        source_url = sanitize_source_url(candidate)
        if source_url is None:
            return None
        return extract_playlist_id(source_url)
    if "list=" in candidate:
        return extract_playlist_id(candidate)
    return sanitize_playlist_id(candidate)


def playlist_url(playlist_id: str) -> str:
    return f"https://www.youtube.com/playlist?list={playlist_id}"


def embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}"
