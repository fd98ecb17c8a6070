from __future__ import annotations

import re
from datetime import date as Date
from datetime import timedelta
from typing import NamedTuple

_DAY_KEY_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


class MalformedKeyError(ValueError):
    def __init__(self, key: object, reason: str = "expected YYYY-MM-DD") -> None:
        super().__init__(f"Malformed day key {key!r}: {reason}")
        self.key = key
        self.reason = reason


class DayParts(NamedTuple):
    year: int
    month: int
    day: int


def parse_day_key(key: object) -> DayParts:
    if not isinstance(key, str) or not _DAY_KEY_RE.match(key):
        raise MalformedKeyError(key)
    year, month, day = key.split("-")
    return DayParts(int(year), int(month), int(day))


def day_key_of(year: int, month: int, day: int) -> str:
    # Pads only; calendar validity is the caller's concern.
    return f"{year:04d}-{month:02d}-{day:02d}"


def _to_date(key: str) -> Date:
    parts = parse_day_key(key)
    try:
        return Date(parts.year, parts.month, parts.day)
    except ValueError as exc:
        raise MalformedKeyError(key, str(exc)) from exc


def week_start_key(day_key: str, week_starts_on_monday: bool) -> str:
    """
    Day key of the first day of the week containing ``day_key``.

    ``date.weekday()`` counts Monday as 0, so a Sunday-start week shifts the
    offset by one. Plain date arithmetic crosses month and year boundaries.
    """
    day = _to_date(day_key)
    weekday = day.weekday()
    offset = weekday if week_starts_on_monday else (weekday + 1) % 7
    start = day - timedelta(days=offset)
    return day_key_of(start.year, start.month, start.day)


def month_key(day_key: str) -> str:
    parts = parse_day_key(day_key)
    return day_key_of(parts.year, parts.month, parts.day)[:7]
