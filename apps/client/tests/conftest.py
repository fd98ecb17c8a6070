from __future__ import annotations

import os
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

# Ensure CI can import app settings without a local .env file.
_ENV_DEFAULTS = {
    "APP_ENV": "test",
    "BACKEND_URL": "http://backend.test",
    "COUNTDOWN_REFRESH_MS": "200",
    "DEFAULT_LOCALE": "en-US",
}
for _key, _value in _ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _value)

import pomoduo.services.timer_backend as timer_backend
from pomoduo.core.deps import backend_dependency
from pomoduo.main import app
from tests.fixtures.timer_payloads import make_insights, make_snapshot


class FakeTimerBackend:
    """Stands in for ``TimerBackend``: async calls are mocks, events are manual."""

    def __init__(self) -> None:
        self.get_state = AsyncMock(return_value=make_snapshot())
        self.get_insights = AsyncMock(return_value=make_insights())
        self.start = AsyncMock(return_value=make_snapshot())
        self.resume = AsyncMock(return_value=make_snapshot())
        self.reset = AsyncMock(return_value=make_snapshot())
        self.update_settings = AsyncMock(return_value=make_snapshot())
        self.update_goals = AsyncMock(return_value=make_insights())
        self.handlers: dict[str, list[Callable[[Any], None]]] = {}

    def _subscribe(self, event: str, handler: Callable[[Any], None]):
        self.handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            if handler in self.handlers.get(event, []):
                self.handlers[event].remove(handler)

        return unsubscribe

    def on_tick(self, handler):
        return self._subscribe("tick", handler)

    def on_phase_completed(self, handler):
        return self._subscribe("phase_completed", handler)

    def on_productivity_updated(self, handler):
        return self._subscribe("productivity_updated", handler)

    def on_stream_error(self, handler):
        return self._subscribe("stream_error", handler)

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(payload)

    def subscriber_count(self, event: str) -> int:
        return len(self.handlers.get(event, []))


@pytest.fixture(autouse=True)
def reset_test_state() -> None:
    app.dependency_overrides.clear()
    timer_backend._http = None  # type: ignore[attr-defined]
    timer_backend._backend = None  # type: ignore[attr-defined]


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_backend() -> FakeTimerBackend:
    return FakeTimerBackend()


@pytest.fixture
def backend_client(client: TestClient, fake_backend: FakeTimerBackend) -> TestClient:
    app.dependency_overrides[backend_dependency] = lambda: fake_backend
    return client
