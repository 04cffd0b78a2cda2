from __future__ import annotations

from collections.abc import Mapping
from datetime import date, timedelta

STREAK_LOOKBACK_DAYS = 365


def current_streak(activity: Mapping[str, int], today: date) -> int:
    """Count consecutive active days ending at ``today``; a quiet today means 0."""
    streak = 0
    for offset in range(STREAK_LOOKBACK_DAYS):
        day = (today - timedelta(days=offset)).isoformat()
        if _count_for(activity, day) > 0:
            streak += 1
        else:
            break
    return streak


def longest_streak(activity: Mapping[str, int]) -> int:
    active_days: list[date] = []
    for raw_day, count in activity.items():
        parsed = _parse_day(raw_day)
        if parsed is not None and _coerce_count(count) > 0:
            active_days.append(parsed)
    active_days.sort()

    longest = 0
    running = 0
    previous: date | None = None
    for day in active_days:
        if previous is not None and day - previous == timedelta(days=1):
            running += 1
        else:
            running = 1
        longest = max(longest, running)
        previous = day
    return longest


def streak_message(streak: int) -> str:
    if streak <= 0:
        return "Start your streak today!"
    if streak == 1:
        return "Great start!"
    if streak < 7:
        return "Keep it up!"
    if streak < 30:
        return "Amazing streak!"
    if streak < 100:
        return "Incredible dedication!"
    return "You're unstoppable!"


def was_active_today(activity: Mapping[str, int], today: date) -> bool:
    return today_activity_count(activity, today) > 0


def today_activity_count(activity: Mapping[str, int], today: date) -> int:
    return _count_for(activity, today.isoformat())


def _count_for(activity: Mapping[str, int], day: str) -> int:
    return _coerce_count(activity.get(day, 0))


def _coerce_count(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _parse_day(raw_value: str) -> date | None:
    try:
        return date.fromisoformat(raw_value)
    except ValueError:
        return None
