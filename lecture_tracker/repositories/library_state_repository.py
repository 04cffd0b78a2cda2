from __future__ import annotations

import json
import logging
from typing import Any

from lecture_tracker.repositories.common import utc_now_iso
from lecture_tracker.repositories.database import Database

LOGGER = logging.getLogger("lecture_tracker.persistence")


class LibraryStateRepository:
    """Durable key-value scope holding one JSON document per library collection."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def load_collection(self, storage_key: str) -> Any | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT value_json
                FROM library_state
                WHERE storage_key = ?
                """,
                (storage_key,),
            ).fetchone()

        if row is None:
            return None
        try:
            return json.loads(str(row["value_json"]))
        except json.JSONDecodeError:
            LOGGER.warning("library state undecodable storage_key=%s", storage_key)
            return None

    def save_collection(self, storage_key: str, value: Any) -> None:
        value_json = json.dumps(value, ensure_ascii=True)
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO library_state (storage_key, value_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(storage_key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at = excluded.updated_at
                """,
                (storage_key, value_json, utc_now_iso()),
            )
