from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from pomoduo.core.locale import WeekConvention
from pomoduo.schemas.common import CamelModel

ChartDimension = Literal["daily", "weekly", "monthly"]


class HeatmapDay(CamelModel):
    # Raw key of any JSON type; parse_day_key validates it and fails the whole call.
    date: Any
    focus_completed: int = Field(default=0, ge=0)
    long_cycle_completed: int = Field(default=0, ge=0)


class GoalPair(CamelModel):
    focus_target: int
    long_cycle_target: int


class GoalSettings(CamelModel):
    daily: GoalPair
    weekly: GoalPair
    monthly: GoalPair


class PeriodSummary(CamelModel):
    focus_completed: int
    long_cycle_completed: int
    focus_target: int
    long_cycle_target: int
    focus_rate: float
    long_cycle_rate: float
    completed: bool


class PeriodSummaries(CamelModel):
    daily: PeriodSummary
    weekly: PeriodSummary
    monthly: PeriodSummary


class InsightsSnapshot(CamelModel):
    heatmap: list[HeatmapDay] = Field(default_factory=list)
    summaries: PeriodSummaries
    goals: GoalSettings


class TrendPoint(CamelModel):
    key: str
    label: str
    focus_completed: int
    long_cycle_completed: int


class TrendSeriesResponse(CamelModel):
    dimension: ChartDimension
    week_convention: WeekConvention
    points: list[TrendPoint]


class HeatmapCell(CamelModel):
    date: str
    focus_completed: int
    long_cycle_completed: int
    level: int = Field(ge=0, le=4)


class InsightsOverviewResponse(CamelModel):
    heatmap: list[HeatmapCell]
    summaries: PeriodSummaries
    goals: GoalSettings
    week_convention: WeekConvention
