from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Query, WebSocket

from pomoduo.core.config import settings
from pomoduo.core.deps import BackendDep
from pomoduo.core.locale import week_convention_for
from pomoduo.routes.streaming import EventQueue, iter_text_frames, serve_until_disconnect
from pomoduo.schemas.insights import (
    ChartDimension,
    GoalPair,
    GoalSettings,
    HeatmapCell,
    InsightsOverviewResponse,
    InsightsSnapshot,
    PeriodSummaries,
    PeriodSummary,
    TrendSeriesResponse,
)
from pomoduo.services.calendar_keys import MalformedKeyError, parse_day_key
from pomoduo.services.goals import heatmap_level, sanitize_goals, summarize_period
from pomoduo.services.timer_backend import TimerBackendError
from pomoduo.services.trends import build_trend_series

router = APIRouter()


def _resummarize(summary: PeriodSummary, goals: GoalPair) -> PeriodSummary:
    # Rates are recomputed against sanitized targets.
    return summarize_period(
        focus_completed=summary.focus_completed,
        long_cycle_completed=summary.long_cycle_completed,
        goals=goals,
    )


def _overview(snapshot: InsightsSnapshot, locale: str | None) -> InsightsOverviewResponse:
    for day in snapshot.heatmap:
        parse_day_key(day.date)
    goals = sanitize_goals(snapshot.goals)
    summaries = PeriodSummaries(
        daily=_resummarize(snapshot.summaries.daily, goals.daily),
        weekly=_resummarize(snapshot.summaries.weekly, goals.weekly),
        monthly=_resummarize(snapshot.summaries.monthly, goals.monthly),
    )
    return InsightsOverviewResponse(
        heatmap=[
            HeatmapCell(
                date=day.date,
                focus_completed=day.focus_completed,
                long_cycle_completed=day.long_cycle_completed,
                level=heatmap_level(day.focus_completed),
            )
            for day in snapshot.heatmap
        ],
        summaries=summaries,
        goals=goals,
        week_convention=week_convention_for(locale or settings.default_locale),
    )


@router.get("/insights", response_model=InsightsOverviewResponse)
async def get_insights(
    backend: BackendDep,
    locale: str | None = Query(default=None),
) -> InsightsOverviewResponse:
    return _overview(await backend.get_insights(), locale)


@router.get("/insights/trends", response_model=TrendSeriesResponse)
async def get_trend_series(
    backend: BackendDep,
    dimension: ChartDimension = Query(default="weekly"),
    locale: str | None = Query(default=None),
) -> TrendSeriesResponse:
    week_convention = week_convention_for(locale or settings.default_locale)
    snapshot = await backend.get_insights()
    return TrendSeriesResponse(
        dimension=dimension,
        week_convention=week_convention,
        points=build_trend_series(snapshot.heatmap, dimension, week_convention),
    )


@router.put("/insights/goals", response_model=InsightsOverviewResponse)
async def update_goals(
    body: GoalSettings,
    backend: BackendDep,
    locale: str | None = Query(default=None),
) -> InsightsOverviewResponse:
    snapshot = await backend.update_goals(sanitize_goals(body))
    return _overview(snapshot, locale)


def _overview_event(snapshot: InsightsSnapshot, locale: str | None) -> dict[str, Any]:
    try:
        overview = _overview(snapshot, locale)
    except MalformedKeyError as exc:
        return {"type": "error", "message": str(exc)}
    return {"type": "insights", "overview": overview.model_dump(by_alias=True)}


async def _drain(websocket: WebSocket) -> None:
    async for _ in iter_text_frames(websocket):
        pass


@router.websocket("/insights/live")
async def insights_live(
    websocket: WebSocket,
    backend: BackendDep,
    locale: str | None = Query(default=None),
) -> None:
    """Push a fresh overview every time the backend reports new productivity data."""
    await websocket.accept()
    queue: EventQueue = asyncio.Queue()

    unsubscribes = [
        backend.on_productivity_updated(
            lambda snapshot: queue.put_nowait(_overview_event(snapshot, locale))
        ),
        backend.on_stream_error(
            lambda message: queue.put_nowait({"type": "error", "message": message})
        ),
    ]
    try:
        try:
            queue.put_nowait(_overview_event(await backend.get_insights(), locale))
        except TimerBackendError as exc:
            queue.put_nowait({"type": "error", "message": str(exc)})
        await serve_until_disconnect(websocket, queue, _drain(websocket))
    finally:
        for unsubscribe in unsubscribes:
            unsubscribe()
