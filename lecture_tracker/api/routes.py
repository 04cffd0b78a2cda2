from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from structlog.contextvars import bind_contextvars, reset_contextvars

from lecture_tracker.dependencies import get_library_sessions, get_playlist_fetcher
from lecture_tracker.models.library import Playlist, PlaylistKey
from lecture_tracker.models.playlist_contracts import (
    CloseSessionResponse,
    DeletePlaylistResponse,
    ExtractPlaylistIdRequest,
    ExtractPlaylistIdResponse,
    ImportPlaylistRequest,
    ImportPlaylistResponse,
    LibraryStatsResponse,
    PlaylistFetchResponse,
    PlaylistKeyBody,
    PlaylistListResponse,
    PlaylistSummary,
    ReorderPlaylistRequest,
)
from lecture_tracker.services.durations import format_total_minutes
from lecture_tracker.services.import_errors import InvalidInputError, PlaylistNotFoundError
from lecture_tracker.services.library_sessions import LibrarySessionManager
from lecture_tracker.services.playlist_deriver import PlaylistDeriver
from lecture_tracker.services.playlist_fetcher import PlaylistFetcher
from lecture_tracker.services.sanitizer import extract_playlist_id, sanitize_source_url
from lecture_tracker.services.streaks import current_streak, longest_streak, streak_message

router = APIRouter()


def _playlist_key(body: PlaylistKeyBody) -> PlaylistKey:
    return PlaylistKey(source=body.source, instructor=body.instructor, category=body.category)


def _playlist_summary(playlist: Playlist) -> PlaylistSummary:
    return PlaylistSummary(
        title=playlist.title,
        instructor=playlist.instructor,
        category=playlist.category,
        source=playlist.source,
        original_url=playlist.original_url,
        playlist_id=playlist.playlist_id,
        import_date=playlist.import_date,
        total_videos=playlist.total_videos,
        completed_videos=playlist.completed_videos,
        progress_percent=playlist.progress_percent,
        total_duration_minutes=round(playlist.total_duration_minutes, 2),
        total_duration=format_total_minutes(playlist.total_duration_minutes),
    )


@router.get(
    "/playlist/{playlist_id}",
    response_model=PlaylistFetchResponse,
    tags=["playlists"],
    operation_id="fetch_playlist",
)
def fetch_playlist(
    playlist_id: str,
    fetcher: Annotated[PlaylistFetcher, Depends(get_playlist_fetcher)],
) -> PlaylistFetchResponse:
    result = fetcher.fetch(playlist_id)
    return PlaylistFetchResponse(playlist_info=result.playlist_info, videos=list(result.videos))


@router.post(
    "/extract-playlist-id",
    response_model=ExtractPlaylistIdResponse,
    tags=["playlists"],
    operation_id="extract_playlist_id",
)
def extract_playlist_id_route(request: ExtractPlaylistIdRequest) -> ExtractPlaylistIdResponse:
    if request.url is None:
        raise InvalidInputError(
            "Please provide a YouTube playlist URL.",
            title="URL is required",
        )

    source_url = sanitize_source_url(request.url)
    if source_url is None:
        raise InvalidInputError("Please provide a valid YouTube URL.", title="Invalid YouTube URL")

    playlist_id = extract_playlist_id(source_url)
    if playlist_id is None:
        raise InvalidInputError(
            "Please provide a valid YouTube playlist URL containing a list parameter.",
            title="Invalid YouTube playlist URL",
        )
    return ExtractPlaylistIdResponse(playlist_id=playlist_id)


@router.post(
    "/library/{user_id}/import",
    response_model=ImportPlaylistResponse,
    tags=["library"],
    operation_id="import_playlist",
)
def import_playlist(
    user_id: str,
    request: ImportPlaylistRequest,
    fetcher: Annotated[PlaylistFetcher, Depends(get_playlist_fetcher)],
    sessions: Annotated[LibrarySessionManager, Depends(get_library_sessions)],
) -> ImportPlaylistResponse:
    store = sessions.open(user_id)
    context_tokens = bind_contextvars(library_scope=store.scope)
    try:
        result = fetcher.fetch(request.reference)
        imported = store.import_playlist(result, request.category)
    finally:
        reset_contextvars(**context_tokens)
    return ImportPlaylistResponse(playlist_info=result.playlist_info, imported_count=len(imported))


@router.get(
    "/library/{user_id}/playlists",
    response_model=PlaylistListResponse,
    tags=["library"],
    operation_id="list_playlists",
)
def list_playlists(
    user_id: str,
    sessions: Annotated[LibrarySessionManager, Depends(get_library_sessions)],
) -> PlaylistListResponse:
    deriver = PlaylistDeriver(sessions.open(user_id))
    return PlaylistListResponse(
        playlists=[_playlist_summary(playlist) for playlist in deriver.derive_playlists()]
    )


@router.post(
    "/library/{user_id}/playlists/delete",
    response_model=DeletePlaylistResponse,
    tags=["library"],
    operation_id="delete_playlist",
)
def delete_playlist(
    user_id: str,
    request: PlaylistKeyBody,
    sessions: Annotated[LibrarySessionManager, Depends(get_library_sessions)],
) -> DeletePlaylistResponse:
    deriver = PlaylistDeriver(sessions.open(user_id))
    removed = deriver.remove_playlist(_playlist_key(request))
    if not removed:
        raise PlaylistNotFoundError("No videos in this library match the playlist.")
    return DeletePlaylistResponse(deleted=True, removed_videos=len(removed))


@router.post(
    "/library/{user_id}/playlists/reorder",
    response_model=PlaylistListResponse,
    tags=["library"],
    operation_id="reorder_playlist",
)
def reorder_playlist(
    user_id: str,
    request: ReorderPlaylistRequest,
    sessions: Annotated[LibrarySessionManager, Depends(get_library_sessions)],
) -> PlaylistListResponse:
    deriver = PlaylistDeriver(sessions.open(user_id))
    if not deriver.reorder_playlist(_playlist_key(request.key), request.target_index):
        raise PlaylistNotFoundError("No videos in this library match the playlist.")
    return PlaylistListResponse(
        playlists=[_playlist_summary(playlist) for playlist in deriver.derive_playlists()]
    )


@router.get(
    "/library/{user_id}/stats",
    response_model=LibraryStatsResponse,
    tags=["library"],
    operation_id="library_stats",
)
def library_stats(
    user_id: str,
    sessions: Annotated[LibrarySessionManager, Depends(get_library_sessions)],
) -> LibraryStatsResponse:
    store = sessions.open(user_id)
    stats = store.compute_stats()
    activity = store.daily_activity
    streak = current_streak(activity, datetime.now(UTC).date())
    return LibraryStatsResponse(
        total_playlists=stats.total_playlists,
        completed_playlists=stats.completed_playlists,
        study_hours=stats.study_hours,
        completion_rate=stats.completion_rate,
        current_streak=streak,
        longest_streak=longest_streak(activity),
        streak_message=streak_message(streak),
        total_videos=len(store.videos),
    )


@router.delete(
    "/library/{user_id}/session",
    response_model=CloseSessionResponse,
    tags=["library"],
    operation_id="close_library_session",
)
def close_library_session(
    user_id: str,
    sessions: Annotated[LibrarySessionManager, Depends(get_library_sessions)],
) -> CloseSessionResponse:
    return CloseSessionResponse(closed=sessions.close(user_id))
