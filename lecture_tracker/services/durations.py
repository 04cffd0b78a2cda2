from __future__ import annotations

import re

ZERO_DURATION = "0:00"
ISO8601_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
_DISPLAY_DURATION_PATTERN = re.compile(r"^\d+(?::\d{1,2}){1,2}$")


def parse_iso8601_duration_seconds(raw_value: object) -> int | None:
    if not isinstance(raw_value, str):
        return None
    matched = ISO8601_DURATION_PATTERN.match(raw_value.strip())
    if matched is None:
        return None

    days = int(matched.group("days") or 0)
    hours = int(matched.group("hours") or 0)
    minutes = int(matched.group("minutes") or 0)
    seconds = int(matched.group("seconds") or 0)
    return days * 86_400 + hours * 3_600 + minutes * 60 + seconds


def format_duration(total_seconds: int) -> str:
    """Render seconds as ``H:MM:SS`` when an hour or longer, else ``M:SS``."""
    clamped = max(0, int(total_seconds))
    hours, remainder = divmod(clamped, 3_600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_iso8601_duration(raw_value: object) -> str:
    total_seconds = parse_iso8601_duration_seconds(raw_value)
    if total_seconds is None:
        return ZERO_DURATION
    return format_duration(total_seconds)


def parse_display_duration_seconds(raw_value: object) -> int | None:
    """Parse ``M:SS`` or ``H:MM:SS``; anything else is ``None``."""
    if not isinstance(raw_value, str):
        return None
    normalized = raw_value.strip()
    if _DISPLAY_DURATION_PATTERN.match(normalized) is None:
        return None
    parts = [int(part) for part in normalized.split(":")]
    if len(parts) == 2:
        minutes, seconds = parts
        return minutes * 60 + seconds
    hours, minutes, seconds = parts
    return hours * 3_600 + minutes * 60 + seconds


def display_duration_minutes(raw_value: object) -> float:
    total_seconds = parse_display_duration_seconds(raw_value)
    if total_seconds is None:
        return 0.0
    return total_seconds / 60


def format_total_minutes(total_minutes: float) -> str:
    """Render a minute total as ``Xh Ym``, or ``Ym`` under an hour."""
    clamped = max(0.0, total_minutes)
    hours = int(clamped // 60)
    minutes = int(clamped % 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
