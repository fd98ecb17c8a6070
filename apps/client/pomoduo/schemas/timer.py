from __future__ import annotations

import math
from typing import Literal

from pydantic import Field, field_validator, model_validator

from pomoduo.core.locale import LocaleCode, normalize_locale
from pomoduo.schemas.common import CamelModel
from pomoduo.services.goals import positive_int

Phase = Literal["focus", "shortBreak", "longBreak"]
PrimaryAction = Literal["start", "resume", "abandon"]

MS_PER_MINUTE = 60_000


class TimerSettings(CamelModel):
    focus_ms: int
    short_break_ms: int
    long_break_ms: int
    long_break_every: int
    notify_enabled: bool = False
    sound_enabled: bool = False
    locale: LocaleCode = "en-US"

    @field_validator(
        "focus_ms", "short_break_ms", "long_break_ms", "long_break_every", mode="before"
    )
    @classmethod
    def clamp_positive(cls, value: object) -> int:
        # Backends send null for non-finite numbers; every value here is a divisor.
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return 1
        return positive_int(value)

    @model_validator(mode="before")
    @classmethod
    def normalize_locale_tag(cls, data: object) -> object:
        if isinstance(data, dict) and "locale" in data:
            data = {**data, "locale": normalize_locale(data.get("locale"))}
        return data


class TimerSnapshot(CamelModel):
    phase: Phase
    is_running: bool
    cycle_count: int = 0
    end_at_ms: int | None = None
    remaining_ms: int
    settings: TimerSettings

    @field_validator("remaining_ms", mode="before")
    @classmethod
    def clamp_remaining(cls, value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(int(value), 0)

    @field_validator("end_at_ms", mode="before")
    @classmethod
    def drop_unusable_end(cls, value: object) -> object:
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else None
        return value


class PhaseCompletedPayload(CamelModel):
    finished_phase: Phase
    next_phase: Phase
    sound_enabled: bool = False


class LiveCountdownState(CamelModel):
    displayed_remaining_ms: int = Field(ge=0)
    is_fresh_phase: bool
    primary_action: PrimaryAction
    remaining_label: str
    progress: float = Field(ge=0.0, le=1.0)


class TimerViewResponse(CamelModel):
    snapshot: TimerSnapshot
    countdown: LiveCountdownState


class TimerSettingsForm(CamelModel):
    focus_minutes: int
    short_break_minutes: int
    long_break_minutes: int
    long_break_every: int
    notify_enabled: bool = False
    sound_enabled: bool = False
    locale: str | None = None

    def to_settings(self) -> TimerSettings:
        return TimerSettings(
            focus_ms=max(1, self.focus_minutes) * MS_PER_MINUTE,
            short_break_ms=max(1, self.short_break_minutes) * MS_PER_MINUTE,
            long_break_ms=max(1, self.long_break_minutes) * MS_PER_MINUTE,
            long_break_every=max(1, self.long_break_every),
            notify_enabled=self.notify_enabled,
            sound_enabled=self.sound_enabled,
            locale=normalize_locale(self.locale),
        )
