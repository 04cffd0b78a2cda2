from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".lecture-tracker"
YOUTUBE_MAX_PAGE_SIZE = 50
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("state.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "stats_mirror_enabled",
    "telemetry_enabled",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{LECTURE_TRACKER_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from `LECTURE_TRACKER_*` environment variables (or `.env`).
    The ingestion limits below are operational knobs, not semantic thresholds.
    """

    model_config = SettingsConfigDict(
        env_prefix="LECTURE_TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for local state and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("state.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('state.db'))}",
    )

    # Upstream video API.
    youtube_api_key: str | None = Field(
        default=None,
        description="YouTube Data API key used for playlist ingestion.",
    )
    youtube_request_timeout_seconds: float = Field(
        default=15.0,
        description="Socket timeout for each YouTube Data API request.",
    )

    # Playlist ingestion limits.
    import_page_size: int = Field(
        default=50,
        description="Playlist items requested per page (capped by the YouTube API at 50).",
    )
    import_max_pages: int = Field(
        default=20,
        description="Hard cap on playlist item pages fetched per import.",
    )
    import_detail_batch_size: int = Field(
        default=50,
        description="Video ids per videos.list detail lookup (capped by the YouTube API at 50).",
    )
    import_max_attempts: int = Field(
        default=3,
        description="Attempts per upstream call before a transient failure is surfaced.",
    )
    import_backoff_base_seconds: float = Field(
        default=2.0,
        description="Exponential backoff base; attempt N waits base**N seconds before retrying.",
    )

    # Ingestion HTTP surface guardrails.
    rate_limit_window_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Per-client rate-limit window size in seconds.",
    )
    rate_limit_max_requests: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum requests allowed per client in each window.",
    )

    # Library behavior.
    default_category: str = Field(
        default="Programming",
        description="Category that receives videos whose category is deleted.",
    )
    stats_mirror_enabled: bool = Field(
        default=True,
        description="Mirror derived library stats for authenticated users after video mutations.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for backend log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("LECTURE_TRACKER_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("LECTURE_TRACKER_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("import_page_size", "import_detail_batch_size", mode="after")
    @classmethod
    def _clamp_page_sizes(cls, value: int) -> int:
        return max(1, min(YOUTUBE_MAX_PAGE_SIZE, value))

    @field_validator("import_max_pages", "import_max_attempts", mode="after")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, value)

    @field_validator("default_category", mode="before")
    @classmethod
    def _normalize_default_category(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("LECTURE_TRACKER_DEFAULT_CATEGORY must be a string.")
        normalized = value.strip()
        if not normalized or normalized == "All":
            raise ValueError("LECTURE_TRACKER_DEFAULT_CATEGORY must be a real category name.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("youtube_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
