from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from lecture_tracker.dependencies import reset_cached_dependencies
from lecture_tracker.main import create_app
from lecture_tracker.repositories.database import Database
from lecture_tracker.repositories.library_state_repository import LibraryStateRepository
from lecture_tracker.repositories.stats_mirror_repository import StatsMirrorRepository
from lecture_tracker.services.library_store import LibraryStore
from tests.fake_video_api import VALID_API_KEY
from tests.support import FrozenClock, SequentialIds


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    for name in (
        "LECTURE_TRACKER_DATA_DIR",
        "LECTURE_TRACKER_DB_PATH",
        "LECTURE_TRACKER_LOG_DIR",
        "LECTURE_TRACKER_YOUTUBE_API_KEY",
        "LECTURE_TRACKER_RATE_LIMIT_MAX_REQUESTS",
        "LECTURE_TRACKER_DEFAULT_CATEGORY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "state.db")
    db.initialize()
    return db


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 10, 9, 30, tzinfo=UTC))


@pytest.fixture
def store_factory(
    database: Database,
    clock: FrozenClock,
) -> Callable[..., LibraryStore]:
    def _build(user_id: str | None = "user-1", **overrides: object) -> LibraryStore:
        options: dict[str, object] = {
            "state_repository": LibraryStateRepository(database),
            "stats_mirror": StatsMirrorRepository(database),
            "clock": clock,
            "id_factory": SequentialIds(),
        }
        options.update(overrides)
        store = LibraryStore(user_id=user_id, **options)  # type: ignore[arg-type]
        store.load()
        return store

    return _build


@pytest.fixture
def store(store_factory: Callable[..., LibraryStore]) -> LibraryStore:
    return store_factory()


@pytest.fixture
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("LECTURE_TRACKER_DATA_DIR", str(data_dir))
    monkeypatch.setenv("LECTURE_TRACKER_YOUTUBE_API_KEY", VALID_API_KEY)
    monkeypatch.setenv("LECTURE_TRACKER_TELEMETRY_SINK", "none")
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
