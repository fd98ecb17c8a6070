from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from pomoduo.schemas.timer import (
    LiveCountdownState,
    PhaseCompletedPayload,
    TimerSnapshot,
)
from pomoduo.services.countdown import now_ms
from pomoduo.services.live_countdown import CountdownSampler
from pomoduo.services.timer_backend import TimerBackend, TimerBackendError, Unsubscribe

logger = logging.getLogger(__name__)

Emit = Callable[[dict[str, Any]], None]


class TimerSession:
    """
    Live timer state for one active view.

    Entering fetches the current snapshot and subscribes to backend events;
    leaving releases every subscription and the countdown interval. Backend
    failures become ``error_message`` and never discard the last snapshot.
    """

    def __init__(
        self,
        backend: TimerBackend,
        *,
        emit: Emit,
        refresh_seconds: float = 0.2,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._backend = backend
        self._emit = emit
        self._sampler = CountdownSampler(
            publish=self._publish_countdown,
            interval_seconds=refresh_seconds,
            clock=clock,
        )
        self._cleanups: list[Unsubscribe] = []
        self.error_message: str | None = None
        self.is_busy = False

    @property
    def snapshot(self) -> TimerSnapshot | None:
        return self._sampler.snapshot

    @property
    def countdown(self) -> LiveCountdownState | None:
        return self._sampler.current()

    async def __aenter__(self) -> "TimerSession":
        try:
            self.apply_snapshot(await self._backend.get_state())
            self._cleanups.append(self._backend.on_tick(self.apply_snapshot))
            self._cleanups.append(
                self._backend.on_phase_completed(self._on_phase_completed)
            )
            self._cleanups.append(self._backend.on_stream_error(self._set_error))
        except TimerBackendError as exc:
            self._set_error(str(exc))
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        cleanups, self._cleanups = self._cleanups, []
        for dispose in cleanups:
            dispose()
        await self._sampler.aclose()

    def apply_snapshot(self, snapshot: TimerSnapshot) -> None:
        # Arrival order wins.
        self._sampler.update(snapshot)

    async def execute(
        self, operation: Callable[[], Awaitable[TimerSnapshot]]
    ) -> TimerSnapshot | None:
        if self.is_busy:
            return None

        self.is_busy = True
        self.error_message = None
        try:
            snapshot = await operation()
            self.apply_snapshot(snapshot)
            return snapshot
        except TimerBackendError as exc:
            self._set_error(str(exc) or "Operation failed")
            return None
        finally:
            self.is_busy = False

    async def run_primary_action(self) -> TimerSnapshot | None:
        state = self.countdown
        if state is None:
            return await self.execute(self._backend.get_state)
        operations = {
            "start": self._backend.start,
            "resume": self._backend.resume,
            "abandon": self._backend.reset,
        }
        return await self.execute(operations[state.primary_action])

    async def reset(self) -> TimerSnapshot | None:
        return await self.execute(self._backend.reset)

    def _publish_countdown(self, state: LiveCountdownState) -> None:
        self._emit({"type": "countdown", "state": state.model_dump(by_alias=True)})

    def _on_phase_completed(self, payload: PhaseCompletedPayload) -> None:
        self._emit({"type": "phase_completed", "payload": payload.model_dump(by_alias=True)})

    def _set_error(self, message: str) -> None:
        logger.warning("Timer session error: %s", message)
        self.error_message = message
        self._emit({"type": "error", "message": message})
