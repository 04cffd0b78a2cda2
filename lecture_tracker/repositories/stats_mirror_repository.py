from __future__ import annotations

import json
from dataclasses import asdict
from typing import Protocol

from lecture_tracker.models.library import LibraryStats
from lecture_tracker.repositories.common import utc_now_iso
from lecture_tracker.repositories.database import Database


class StatsMirror(Protocol):
    def push_stats(self, user_id: str, stats: LibraryStats) -> None:
        ...


class StatsMirrorRepository:
    """One upserted stats document per user; the cross-device summary."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def push_stats(self, user_id: str, stats: LibraryStats) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO user_stats_mirror (user_id, stats_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    stats_json = excluded.stats_json,
                    updated_at = excluded.updated_at
                """,
                (user_id, json.dumps(asdict(stats), sort_keys=True), utc_now_iso()),
            )

    def get_stats(self, user_id: str) -> LibraryStats | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT stats_json
                FROM user_stats_mirror
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()

        if row is None:
            return None
        payload = json.loads(str(row["stats_json"]))
        return LibraryStats(
            total_playlists=int(payload["total_playlists"]),
            completed_playlists=int(payload["completed_playlists"]),
            study_hours=float(payload["study_hours"]),
            completion_rate=int(payload["completion_rate"]),
        )
