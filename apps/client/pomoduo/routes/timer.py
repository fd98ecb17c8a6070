from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, WebSocket

from pomoduo.core.config import settings
from pomoduo.core.deps import BackendDep
from pomoduo.routes.streaming import EventQueue, iter_text_frames, serve_until_disconnect
from pomoduo.schemas.timer import TimerSettingsForm, TimerSnapshot, TimerViewResponse
from pomoduo.services.countdown import derive_countdown, now_ms
from pomoduo.services.timer_session import TimerSession

router = APIRouter()


def _view(snapshot: TimerSnapshot) -> TimerViewResponse:
    return TimerViewResponse(
        snapshot=snapshot, countdown=derive_countdown(snapshot, now_ms())
    )


@router.get("/timer", response_model=TimerViewResponse)
async def get_timer(backend: BackendDep) -> TimerViewResponse:
    return _view(await backend.get_state())


@router.post("/timer/start", response_model=TimerViewResponse)
async def start_timer(backend: BackendDep) -> TimerViewResponse:
    return _view(await backend.start())


@router.post("/timer/resume", response_model=TimerViewResponse)
async def resume_timer(backend: BackendDep) -> TimerViewResponse:
    return _view(await backend.resume())


@router.post("/timer/reset", response_model=TimerViewResponse)
async def reset_timer(backend: BackendDep) -> TimerViewResponse:
    return _view(await backend.reset())


@router.post("/timer/primary", response_model=TimerViewResponse)
async def run_primary_action(backend: BackendDep) -> TimerViewResponse:
    current = await backend.get_state()
    action = derive_countdown(current, now_ms()).primary_action
    if action == "start":
        return _view(await backend.start())
    if action == "resume":
        return _view(await backend.resume())
    return _view(await backend.reset())


@router.put("/timer/settings", response_model=TimerViewResponse)
async def update_timer_settings(
    body: TimerSettingsForm, backend: BackendDep
) -> TimerViewResponse:
    return _view(await backend.update_settings(body.to_settings()))


async def _receive_commands(websocket: WebSocket, session: TimerSession) -> None:
    async for text in iter_text_frames(websocket):
        try:
            message = json.loads(text)
        except ValueError:
            continue
        command = message.get("command") if isinstance(message, dict) else None
        if command == "primary":
            await session.run_primary_action()
        elif command == "reset":
            await session.reset()


@router.websocket("/timer/live")
async def timer_live(websocket: WebSocket, backend: BackendDep) -> None:
    await websocket.accept()
    queue: EventQueue = asyncio.Queue()

    async with TimerSession(
        backend,
        emit=queue.put_nowait,
        refresh_seconds=settings.countdown_refresh_seconds,
    ) as session:
        await serve_until_disconnect(
            websocket, queue, _receive_commands(websocket, session)
        )
