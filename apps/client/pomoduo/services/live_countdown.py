from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

from pomoduo.schemas.timer import LiveCountdownState, TimerSnapshot
from pomoduo.services.countdown import derive_countdown, now_ms

logger = logging.getLogger(__name__)

Publish = Callable[[LiveCountdownState], None]


class CountdownSampler:
    """
    Re-derives the live countdown on a fixed interval while the timer runs.

    Scoped to one view: use as ``async with``. The interval task exists only
    while the latest snapshot is running and is cancelled on every
    transition to not-running and on exit.
    """

    def __init__(
        self,
        *,
        publish: Publish,
        interval_seconds: float = 0.2,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._publish = publish
        self._interval = interval_seconds
        self._clock = clock
        self._snapshot: TimerSnapshot | None = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def snapshot(self) -> TimerSnapshot | None:
        return self._snapshot

    @property
    def is_sampling(self) -> bool:
        return self._task is not None and not self._task.done()

    def current(self) -> LiveCountdownState | None:
        if self._snapshot is None:
            return None
        return derive_countdown(self._snapshot, self._clock())

    def update(self, snapshot: TimerSnapshot) -> None:
        if self._closed:
            return
        self._snapshot = snapshot
        self._emit()
        if snapshot.is_running:
            self._ensure_task()
        else:
            self._cancel_task()

    async def __aenter__(self) -> "CountdownSampler":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._closed = True
        task = self._task
        self._cancel_task()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _emit(self) -> None:
        state = self.current()
        if state is not None:
            self._publish(state)

    def _ensure_task(self) -> None:
        if self.is_sampling:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def _cancel_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        me = asyncio.current_task()
        while True:
            await asyncio.sleep(self._interval)
            # Superseded or stopped while sleeping.
            if self._task is not me or self._snapshot is None:
                return
            if not self._snapshot.is_running:
                return
            try:
                self._emit()
            except Exception:
                logger.exception("Countdown publish failed")
