from __future__ import annotations

import math
import time

from pomoduo.schemas.timer import LiveCountdownState, PrimaryAction, TimerSnapshot
from pomoduo.services.goals import positive_int


def now_ms() -> int:
    return int(time.time() * 1000)


def phase_duration_ms(snapshot: TimerSnapshot) -> int:
    s = snapshot.settings
    durations = {
        "focus": s.focus_ms,
        "shortBreak": s.short_break_ms,
        "longBreak": s.long_break_ms,
    }
    # Used as a divisor; floor at 1.
    return positive_int(durations.get(snapshot.phase, s.focus_ms))


def displayed_remaining_ms(snapshot: TimerSnapshot, now: int) -> int:
    if snapshot.is_running and snapshot.end_at_ms is not None:
        return max(snapshot.end_at_ms - now, 0)
    return max(snapshot.remaining_ms, 0)


def primary_action(snapshot: TimerSnapshot) -> PrimaryAction:
    if snapshot.is_running:
        return "abandon"
    if snapshot.remaining_ms >= phase_duration_ms(snapshot):
        return "start"
    return "resume"


def format_remaining(ms: int) -> str:
    # Round up so the display never reads 00:00 while time remains.
    total_seconds = math.ceil(max(ms, 0) / 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def derive_countdown(snapshot: TimerSnapshot, now: int) -> LiveCountdownState:
    duration = phase_duration_ms(snapshot)
    remaining = displayed_remaining_ms(snapshot, now)
    progress = 1.0 - min(remaining / duration, 1.0)
    return LiveCountdownState(
        displayed_remaining_ms=remaining,
        is_fresh_phase=snapshot.remaining_ms >= duration,
        primary_action=primary_action(snapshot),
        remaining_label=format_remaining(remaining),
        progress=round(progress, 4),
    )
