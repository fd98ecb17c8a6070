from __future__ import annotations

import math
from typing import Any

from pomoduo.schemas.insights import GoalPair, GoalSettings, PeriodSummary

DEFAULT_GOALS = GoalSettings(
    daily=GoalPair(focus_target=8, long_cycle_target=2),
    weekly=GoalPair(focus_target=40, long_cycle_target=10),
    monthly=GoalPair(focus_target=160, long_cycle_target=40),
)

# Upper bounds (inclusive) for heatmap levels 0..3; anything above is level 4.
_HEATMAP_LEVEL_BOUNDS: tuple[int, ...] = (0, 2, 4, 7)


def positive_int(value: Any, fallback: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if isinstance(value, float) and not math.isfinite(value):
        return fallback
    n = int(value)
    return n if n > 0 else fallback


def completion_rate(completed: int, target: Any) -> float:
    return min(max(completed, 0) / positive_int(target), 1.0)


def summarize_period(
    *, focus_completed: int, long_cycle_completed: int, goals: GoalPair
) -> PeriodSummary:
    focus_target = positive_int(goals.focus_target)
    long_cycle_target = positive_int(goals.long_cycle_target)
    focus_rate = completion_rate(focus_completed, focus_target)
    long_cycle_rate = completion_rate(long_cycle_completed, long_cycle_target)
    return PeriodSummary(
        focus_completed=focus_completed,
        long_cycle_completed=long_cycle_completed,
        focus_target=focus_target,
        long_cycle_target=long_cycle_target,
        focus_rate=focus_rate,
        long_cycle_rate=long_cycle_rate,
        completed=focus_rate >= 1.0 and long_cycle_rate >= 1.0,
    )


def _sanitize_pair(pair: GoalPair, fallback: GoalPair) -> GoalPair:
    return GoalPair(
        focus_target=positive_int(pair.focus_target, fallback.focus_target),
        long_cycle_target=positive_int(
            pair.long_cycle_target, fallback.long_cycle_target
        ),
    )


def sanitize_goals(goals: GoalSettings) -> GoalSettings:
    return GoalSettings(
        daily=_sanitize_pair(goals.daily, DEFAULT_GOALS.daily),
        weekly=_sanitize_pair(goals.weekly, DEFAULT_GOALS.weekly),
        monthly=_sanitize_pair(goals.monthly, DEFAULT_GOALS.monthly),
    )


def heatmap_level(focus_completed: int) -> int:
    for level, bound in enumerate(_HEATMAP_LEVEL_BOUNDS):
        if focus_completed <= bound:
            return level
    return len(_HEATMAP_LEVEL_BOUNDS)
