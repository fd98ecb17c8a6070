from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Sequence

from pomoduo.core.locale import WeekConvention
from pomoduo.schemas.insights import ChartDimension, HeatmapDay, TrendPoint
from pomoduo.services.calendar_keys import month_key, parse_day_key, week_start_key

logger = logging.getLogger(__name__)

DAILY_WINDOW = 30
WEEKLY_WINDOW = 12
MONTHLY_WINDOW = 12

WEEKLY_LABEL_PREFIX = "W "


@dataclass
class TrendBucket:
    key: str
    focus_completed: int = 0
    long_cycle_completed: int = 0


def build_trend_series(
    records: Sequence[HeatmapDay],
    dimension: ChartDimension,
    week_convention: WeekConvention = "sunday",
) -> list[TrendPoint]:
    if dimension == "daily":
        return aggregate_daily(records)
    if dimension == "weekly":
        return aggregate_weekly(records, week_convention)
    if dimension == "monthly":
        return aggregate_monthly(records)
    raise ValueError(f"Unsupported chart dimension: {dimension!r}")


def aggregate_daily(
    records: Sequence[HeatmapDay], window: int = DAILY_WINDOW
) -> list[TrendPoint]:
    ordered = _sorted_records(records)
    return [
        _to_point(
            TrendBucket(
                key=item.date,
                focus_completed=item.focus_completed,
                long_cycle_completed=item.long_cycle_completed,
            ),
            "daily",
        )
        for item in _last(ordered, window)
    ]


def aggregate_weekly(
    records: Sequence[HeatmapDay],
    week_convention: WeekConvention = "sunday",
    window: int = WEEKLY_WINDOW,
) -> list[TrendPoint]:
    is_monday_start = week_convention == "monday"
    buckets = _bucketize(records, lambda key: week_start_key(key, is_monday_start))
    return [_to_point(bucket, "weekly") for bucket in _last(buckets, window)]


def aggregate_monthly(
    records: Sequence[HeatmapDay], window: int = MONTHLY_WINDOW
) -> list[TrendPoint]:
    buckets = _bucketize(records, month_key)
    return [_to_point(bucket, "monthly") for bucket in _last(buckets, window)]


def format_label(key: str, dimension: ChartDimension) -> str:
    if dimension == "daily":
        return key[5:]
    if dimension == "weekly":
        return f"{WEEKLY_LABEL_PREFIX}{key[5:]}"
    return key


def _sorted_records(records: Sequence[HeatmapDay]) -> list[HeatmapDay]:
    # Fail the whole call on the first corrupt key.
    for item in records:
        parse_day_key(item.date)

    duplicates = sorted(
        key for key, n in Counter(item.date for item in records).items() if n > 1
    )
    if duplicates:
        logger.warning(
            "Heatmap contains duplicate day keys; each copy is counted: %s",
            ", ".join(duplicates[:10]),
        )

    # Fixed-width zero-padded keys: lexicographic order is chronological.
    return sorted(records, key=lambda item: item.date)


def _bucketize(
    records: Sequence[HeatmapDay], key_of: Callable[[str], str]
) -> list[TrendBucket]:
    buckets: dict[str, TrendBucket] = {}
    for item in _sorted_records(records):
        key = key_of(item.date)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = TrendBucket(key=key)
            buckets[key] = bucket
        bucket.focus_completed += item.focus_completed
        bucket.long_cycle_completed += item.long_cycle_completed
    return sorted(buckets.values(), key=lambda bucket: bucket.key)


def _last(items: list, window: int) -> list:
    if window <= 0:
        return []
    return items[-window:]


def _to_point(bucket: TrendBucket, dimension: ChartDimension) -> TrendPoint:
    return TrendPoint(
        key=bucket.key,
        label=format_label(bucket.key, dimension),
        focus_completed=bucket.focus_completed,
        long_cycle_completed=bucket.long_cycle_completed,
    )
