from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from pomoduo.services.timer_backend import TimerBackend, get_backend


def backend_dependency() -> TimerBackend:
    return get_backend()


BackendDep = Annotated[TimerBackend, Depends(backend_dependency)]
