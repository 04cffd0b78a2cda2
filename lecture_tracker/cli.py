"""Command line entry point for the lecture tracker."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import NoReturn

import click
from rich.console import Console
from rich.table import Table

from lecture_tracker.dependencies import get_library_sessions, get_playlist_fetcher, get_settings
from lecture_tracker.logging_config import configure_application_logging
from lecture_tracker.models.library import PlaylistKey
from lecture_tracker.services.durations import format_total_minutes
from lecture_tracker.services.import_errors import PlaylistImportError
from lecture_tracker.services.library_sessions import LibrarySessionManager
from lecture_tracker.services.playlist_deriver import PlaylistDeriver
from lecture_tracker.services.playlist_fetcher import ImportStage
from lecture_tracker.services.sanitizer import extract_playlist_id, sanitize_source_url
from lecture_tracker.services.streaks import current_streak, longest_streak, streak_message

console = Console()

_STAGE_LABELS: dict[ImportStage, str] = {
    "id_unresolved": "Resolving playlist id",
    "fetching_playlist_meta": "Fetching playlist details",
    "fetching_items": "Fetching playlist items",
    "fetching_details": "Fetching video durations",
    "aggregated": "Aggregated playlist",
    "failed": "Import failed",
}


def _sessions() -> LibrarySessionManager:
    return get_library_sessions()


def _fail(error: PlaylistImportError) -> NoReturn:
    console.print(f"[red]{error.title}:[/red] {error.message}")
    raise SystemExit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Also log to the console at the configured level.")
def main(verbose: bool) -> None:
    """Lecture Tracker - import video playlists and follow your progress."""
    if verbose:
        configure_application_logging(get_settings())


@main.command(name="import")
@click.argument("reference")
@click.option("--user", "-u", default="guest", show_default=True, help="Library owner.")
@click.option("--category", "-c", default=None, help="Category for the imported videos.")
def import_command(reference: str, user: str, category: str | None) -> None:
    """Import a YouTube playlist by URL or id."""
    fetcher = get_playlist_fetcher()
    store = _sessions().open(user)

    def _report_stage(stage: ImportStage) -> None:
        console.print(f"[dim]{_STAGE_LABELS[stage]}...[/dim]")

    try:
        result = fetcher.fetch(reference, on_stage=_report_stage)
    except PlaylistImportError as exc:
        _fail(exc)

    imported = store.import_playlist(result, category)
    console.print(
        f"[green]Imported {len(imported)} videos[/green] from "
        f"[bold]{result.playlist_info.title}[/bold] ({result.playlist_info.total_duration})"
    )
    if result.degraded_batches:
        console.print(
            f"[yellow]{result.degraded_batches} detail batch(es) failed; "
            "affected durations show as 0:00[/yellow]"
        )


@main.command(name="playlists")
@click.option("--user", "-u", default="guest", show_default=True, help="Library owner.")
def playlists_command(user: str) -> None:
    """List the playlists in a library."""
    deriver = PlaylistDeriver(_sessions().open(user))
    playlists = deriver.derive_playlists()
    if not playlists:
        console.print("  (no playlists)")
        return

    table = Table(title="Playlists")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Instructor")
    table.add_column("Category")
    table.add_column("Source")
    table.add_column("Progress", justify="right")
    table.add_column("Duration", justify="right")
    for index, playlist in enumerate(playlists, start=1):
        table.add_row(
            str(index),
            playlist.title,
            playlist.instructor,
            playlist.category,
            playlist.source,
            f"{playlist.completed_videos}/{playlist.total_videos}",
            format_total_minutes(playlist.total_duration_minutes),
        )
    console.print(table)


@main.command(name="stats")
@click.option("--user", "-u", default="guest", show_default=True, help="Library owner.")
def stats_command(user: str) -> None:
    """Show progress statistics and streaks."""
    store = _sessions().open(user)
    stats = store.compute_stats()
    activity = store.daily_activity
    streak = current_streak(activity, datetime.now(UTC).date())

    table = Table(show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Playlists", str(stats.total_playlists))
    table.add_row("Completed playlists", str(stats.completed_playlists))
    table.add_row("Completion rate", f"{stats.completion_rate}%")
    table.add_row("Study hours", f"{stats.study_hours}")
    table.add_row("Current streak", f"{streak} day(s)")
    table.add_row("Longest streak", f"{longest_streak(activity)} day(s)")
    console.print(table)
    console.print(f"[bold]{streak_message(streak)}[/bold]")


@main.command(name="delete-playlist")
@click.option("--user", "-u", default="guest", show_default=True, help="Library owner.")
@click.option(
    "--source",
    type=click.Choice(["manual", "youtube-playlist"]),
    default="youtube-playlist",
    show_default=True,
)
@click.option("--instructor", required=True)
@click.option("--category", required=True)
def delete_playlist_command(user: str, source: str, instructor: str, category: str) -> None:
    """Delete a playlist with its favorites, history, notes and bookmarks."""
    deriver = PlaylistDeriver(_sessions().open(user))
    removed = deriver.remove_playlist(
        PlaylistKey(source=source, instructor=instructor, category=category)
    )
    if not removed:
        console.print("[yellow]No playlist matches that source, instructor and category[/yellow]")
        raise SystemExit(1)
    console.print(f"[green]Deleted playlist with {len(removed)} videos[/green]")


@main.command(name="extract-id")
@click.argument("url")
def extract_id_command(url: str) -> None:
    """Print the playlist id contained in a YouTube URL."""
    source_url = sanitize_source_url(url)
    playlist_id = extract_playlist_id(source_url) if source_url is not None else None
    if playlist_id is None:
        console.print("[red]Not a valid YouTube playlist URL[/red]")
        raise SystemExit(1)
    click.echo(playlist_id)


if __name__ == "__main__":
    main()
