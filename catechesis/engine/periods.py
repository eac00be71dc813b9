"""
catechesis.engine.periods — Leaderboard windows & period keys
===============================================================

* WEEKLY   — key ``YYYY-Www`` (ISO week), window = last 7 days.
* MONTHLY  — key ``YYYY-MM``, window = one calendar month back.
* ALL_TIME — key ``ALL``, window = since 1970-01-01.

Also holds the UTC day-range helper shared by analytics queries.
"""

from __future__ import annotations

import calendar
from datetime import UTC, date, datetime, time, timedelta

from catechesis.database.models import LeaderboardType

ALL_TIME_KEY = "ALL"
EPOCH = date(1970, 1, 1)


def period_key(board: LeaderboardType | str, today: date) -> str:
    """Identifier of the current window for *board* as of *today*."""
    match LeaderboardType(board):
        case LeaderboardType.WEEKLY:
            iso_year, iso_week, _ = today.isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        case LeaderboardType.MONTHLY:
            return f"{today.year}-{today.month:02d}"
        case LeaderboardType.ALL_TIME:
            return ALL_TIME_KEY


def window_start(board: LeaderboardType | str, today: date) -> date:
    """First activity date (inclusive) counted by *board* as of *today*."""
    match LeaderboardType(board):
        case LeaderboardType.WEEKLY:
            return today - timedelta(days=7)
        case LeaderboardType.MONTHLY:
            return _minus_one_month(today)
        case LeaderboardType.ALL_TIME:
            return EPOCH


def _minus_one_month(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def utc_day_range(day: date) -> tuple[datetime, datetime]:
    """``[start, end)`` aware datetimes covering *day* in UTC."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def utc_today() -> date:
    return datetime.now(UTC).date()
