from __future__ import annotations

from functools import lru_cache

from lecture_tracker.config import AppSettings, load_settings
from lecture_tracker.repositories.database import Database
from lecture_tracker.repositories.library_state_repository import LibraryStateRepository
from lecture_tracker.repositories.stats_mirror_repository import StatsMirrorRepository
from lecture_tracker.services.library_sessions import LibrarySessionManager
from lecture_tracker.services.library_store import LibraryStore
from lecture_tracker.services.playlist_fetcher import PlaylistFetcher
from lecture_tracker.services.rate_limiter import SlidingWindowRateLimiter
from lecture_tracker.services.video_api import GoogleVideoApiClient
from lecture_tracker.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    settings = get_settings()
    database = Database(settings.db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_video_api_client() -> GoogleVideoApiClient:
    settings = get_settings()
    return GoogleVideoApiClient(
        settings.youtube_api_key,
        timeout_seconds=settings.youtube_request_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_playlist_fetcher() -> PlaylistFetcher:
    return PlaylistFetcher.from_settings(
        get_settings(),
        get_video_api_client(),
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_rate_limiter() -> SlidingWindowRateLimiter:
    settings = get_settings()
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


@lru_cache(maxsize=1)
def get_library_sessions() -> LibrarySessionManager:
    settings = get_settings()
    database = get_database()
    state_repository = LibraryStateRepository(database)
    stats_mirror = StatsMirrorRepository(database)
    telemetry = get_telemetry()

    def _build_store(user_id: str | None) -> LibraryStore:
        return LibraryStore(
            user_id=user_id,
            state_repository=state_repository,
            stats_mirror=stats_mirror,
            telemetry=telemetry,
            default_category=settings.default_category,
            mirror_enabled=settings.stats_mirror_enabled,
        )

    return LibrarySessionManager(_build_store)


def reset_cached_dependencies() -> None:
    get_library_sessions.cache_clear()
    get_rate_limiter.cache_clear()
    get_playlist_fetcher.cache_clear()
    get_video_api_client.cache_clear()
    get_telemetry.cache_clear()
    get_database.cache_clear()
    get_settings.cache_clear()
