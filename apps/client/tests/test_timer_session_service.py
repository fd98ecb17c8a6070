from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest
import respx

from pomoduo.schemas.timer import PhaseCompletedPayload
from pomoduo.services.timer_backend import TimerBackend, TimerBackendError
from pomoduo.services.timer_session import TimerSession
from tests.fixtures.timer_payloads import FOCUS_MS, make_snapshot, snapshot_payload


def _session(fake_backend, events: list[dict[str, Any]]) -> TimerSession:
    return TimerSession(
        fake_backend, emit=events.append, refresh_seconds=0.01, clock=lambda: 0
    )


@pytest.mark.asyncio
async def test_session_loads_state_and_releases_subscriptions(fake_backend) -> None:
    events: list[dict[str, Any]] = []
    fake_backend.get_state.return_value = make_snapshot(remaining_ms=FOCUS_MS)

    async with _session(fake_backend, events) as session:
        assert session.snapshot is not None
        assert fake_backend.subscriber_count("tick") == 1
        assert fake_backend.subscriber_count("phase_completed") == 1

    assert fake_backend.subscriber_count("tick") == 0
    assert fake_backend.subscriber_count("phase_completed") == 0
    assert fake_backend.subscriber_count("stream_error") == 0
    assert events[0]["type"] == "countdown"
    assert events[0]["state"]["primaryAction"] == "start"


@pytest.mark.asyncio
async def test_latest_tick_supersedes_previous_snapshot(fake_backend) -> None:
    events: list[dict[str, Any]] = []

    async with _session(fake_backend, events) as session:
        fake_backend.emit("tick", make_snapshot(is_running=True, end_at_ms=90_000, remaining_ms=90_000))
        fake_backend.emit("tick", make_snapshot(is_running=False, remaining_ms=45_000))

        assert session.countdown is not None
        assert session.countdown.displayed_remaining_ms == 45_000
        await asyncio.sleep(0.03)

    assert events[-1]["state"]["displayedRemainingMs"] == 45_000


@pytest.mark.asyncio
async def test_phase_completed_is_forwarded(fake_backend) -> None:
    events: list[dict[str, Any]] = []

    async with _session(fake_backend, events):
        fake_backend.emit(
            "phase_completed",
            PhaseCompletedPayload(finished_phase="focus", next_phase="shortBreak", sound_enabled=True),
        )

    forwarded = [e for e in events if e["type"] == "phase_completed"]
    assert forwarded == [
        {
            "type": "phase_completed",
            "payload": {"finishedPhase": "focus", "nextPhase": "shortBreak", "soundEnabled": True},
        }
    ]


@pytest.mark.asyncio
async def test_initial_load_failure_becomes_error_message(fake_backend) -> None:
    events: list[dict[str, Any]] = []
    fake_backend.get_state.side_effect = TimerBackendError(status_code=503, message="backend down")

    async with _session(fake_backend, events) as session:
        assert session.snapshot is None
        assert session.error_message == "backend down"

    assert events == [{"type": "error", "message": "backend down"}]


@pytest.mark.asyncio
async def test_failed_action_keeps_last_good_snapshot(fake_backend) -> None:
    events: list[dict[str, Any]] = []
    good = make_snapshot(remaining_ms=60_000)
    fake_backend.get_state.return_value = good
    fake_backend.resume.side_effect = TimerBackendError(status_code=409, message="already running")

    async with _session(fake_backend, events) as session:
        result = await session.run_primary_action()

        assert result is None
        assert session.snapshot == good
        assert session.error_message == "already running"
        assert session.is_busy is False
        fake_backend.resume.assert_awaited_once()


@pytest.mark.asyncio
async def test_primary_action_dispatch(fake_backend) -> None:
    events: list[dict[str, Any]] = []
    fake_backend.get_state.return_value = make_snapshot(is_running=True, end_at_ms=10**13, remaining_ms=1_000)
    fake_backend.reset.return_value = make_snapshot(remaining_ms=FOCUS_MS)

    async with _session(fake_backend, events) as session:
        await session.run_primary_action()
        fake_backend.reset.assert_awaited_once()

        await session.run_primary_action()
        fake_backend.start.assert_awaited_once()


@pytest.mark.asyncio
async def test_execute_ignores_calls_while_busy(fake_backend) -> None:
    events: list[dict[str, Any]] = []
    gate = asyncio.Event()

    async def _slow_start():
        await gate.wait()
        return make_snapshot(is_running=True, end_at_ms=10**13)

    async with _session(fake_backend, events) as session:
        first = asyncio.create_task(session.execute(_slow_start))
        await asyncio.sleep(0)
        assert session.is_busy

        assert await session.execute(fake_backend.start) is None
        fake_backend.start.assert_not_awaited()

        gate.set()
        assert (await first) is not None


@pytest.mark.asyncio
async def test_stream_error_is_surfaced(fake_backend) -> None:
    events: list[dict[str, Any]] = []

    async with _session(fake_backend, events) as session:
        fake_backend.emit("stream_error", "Timer backend event stream closed")

        assert session.error_message == "Timer backend event stream closed"
        assert session.snapshot is not None


@pytest.mark.asyncio
@respx.mock
async def test_unreadable_backend_state_becomes_error_message() -> None:
    events: list[dict[str, Any]] = []
    payload = snapshot_payload()
    payload["phase"] = "nap"
    respx.get("http://backend.test/timer/state").mock(
        return_value=httpx.Response(200, json=payload)
    )
    backend = TimerBackend("http://backend.test", retry_attempts=1)

    async with TimerSession(backend, emit=events.append, refresh_seconds=0.01) as session:
        assert session.snapshot is None
        assert session.error_message == "Timer backend sent an unreadable TimerSnapshot"

    assert events == [
        {"type": "error", "message": "Timer backend sent an unreadable TimerSnapshot"}
    ]
    assert not backend.events.is_running
    await backend.aclose()
