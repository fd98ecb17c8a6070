from __future__ import annotations

from typing import Any

from pomoduo.schemas.insights import HeatmapDay, InsightsSnapshot
from pomoduo.schemas.timer import TimerSnapshot

FOCUS_MS = 25 * 60_000
SHORT_BREAK_MS = 5 * 60_000
LONG_BREAK_MS = 15 * 60_000


def snapshot_payload(
    *,
    phase: str = "focus",
    is_running: bool = False,
    remaining_ms: int = FOCUS_MS,
    end_at_ms: int | None = None,
    cycle_count: int = 0,
    focus_ms: int = FOCUS_MS,
    short_break_ms: int = SHORT_BREAK_MS,
    long_break_ms: int = LONG_BREAK_MS,
    locale: str = "en-US",
) -> dict[str, Any]:
    return {
        "phase": phase,
        "isRunning": is_running,
        "cycleCount": cycle_count,
        "endAtMs": end_at_ms,
        "remainingMs": remaining_ms,
        "settings": {
            "focusMs": focus_ms,
            "shortBreakMs": short_break_ms,
            "longBreakMs": long_break_ms,
            "longBreakEvery": 4,
            "notifyEnabled": True,
            "soundEnabled": True,
            "locale": locale,
        },
    }


def make_snapshot(**kwargs: Any) -> TimerSnapshot:
    return TimerSnapshot.model_validate(snapshot_payload(**kwargs))


def heatmap_day(date: str, focus: int = 0, long_cycle: int = 0) -> dict[str, Any]:
    return {"date": date, "focusCompleted": focus, "longCycleCompleted": long_cycle}


def make_heatmap(*days: tuple[str, int, int]) -> list[HeatmapDay]:
    return [HeatmapDay.model_validate(heatmap_day(*day)) for day in days]


def _summary(focus: int, long_cycle: int, focus_target: int, long_target: int) -> dict[str, Any]:
    return {
        "focusCompleted": focus,
        "longCycleCompleted": long_cycle,
        "focusTarget": focus_target,
        "longCycleTarget": long_target,
        "focusRate": 0.0,
        "longCycleRate": 0.0,
        "completed": False,
    }


def insights_payload(
    *,
    heatmap: list[dict[str, Any]] | None = None,
    daily_goal: tuple[int, int] = (8, 2),
    daily_done: tuple[int, int] = (4, 1),
) -> dict[str, Any]:
    return {
        "heatmap": heatmap or [],
        "summaries": {
            "daily": _summary(*daily_done, *daily_goal),
            "weekly": _summary(20, 5, 40, 10),
            "monthly": _summary(80, 20, 160, 40),
        },
        "goals": {
            "daily": {"focusTarget": daily_goal[0], "longCycleTarget": daily_goal[1]},
            "weekly": {"focusTarget": 40, "longCycleTarget": 10},
            "monthly": {"focusTarget": 160, "longCycleTarget": 40},
        },
    }


def make_insights(**kwargs: Any) -> InsightsSnapshot:
    return InsightsSnapshot.model_validate(insights_payload(**kwargs))
