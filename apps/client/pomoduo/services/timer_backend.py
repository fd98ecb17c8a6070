from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncIterator, Callable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pomoduo.core.config import settings
from pomoduo.schemas.insights import GoalSettings, InsightsSnapshot
from pomoduo.schemas.timer import PhaseCompletedPayload, TimerSettings, TimerSnapshot

logger = logging.getLogger(__name__)

_http: httpx.AsyncClient | None = None

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]

TICK_EVENT = "timer_tick"
PHASE_COMPLETED_EVENT = "timer_phase_completed"
PRODUCTIVITY_UPDATED_EVENT = "productivity_updated"
STREAM_ERROR_EVENT = "stream_error"

ModelT = TypeVar("ModelT", bound=BaseModel)


class TimerBackendError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: str | None = None,
        hint: str | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.hint = hint
        self.details = details


def get_http() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=httpx.Timeout(30.0))
    return _http


async def close_http() -> None:
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


_RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}


def _is_retryable_exception(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, TimerBackendError):
        return exc.status_code in _RETRYABLE_STATUSES
    return False


def _before_sleep_log(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, TimerBackendError):
        logger.warning(
            "Timer backend request retrying due to status %s (attempt %s)",
            exc.status_code,
            retry_state.attempt_number,
        )
    else:
        logger.warning(
            "Timer backend request retrying due to transport error (attempt %s)",
            retry_state.attempt_number,
        )


async def iter_sse_events(
    lines: AsyncIterator[str],
) -> AsyncIterator[tuple[str, str]]:
    """Yield ``(event, data)`` pairs from a text/event-stream body."""
    event = "message"
    data: list[str] = []
    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield event, "\n".join(data)
            event = "message"
            data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class BackendEventStream:
    """
    One shared server-sent events connection fanned out to handlers.

    The connection runs only while at least one handler is registered.
    Drops are reported to ``stream_error`` handlers and reconnected.
    """

    def __init__(
        self,
        backend: "TimerBackend",
        *,
        reconnect_seconds: float = 2.0,
    ) -> None:
        self._backend = backend
        self._reconnect_seconds = reconnect_seconds
        self._handlers: dict[str, list[Handler]] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        self._handlers.setdefault(event, []).append(handler)
        if event != STREAM_ERROR_EVENT:
            self._ensure_running()

        def unsubscribe() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)
            if not self._has_stream_handlers():
                self._stop()

        return unsubscribe

    def dispatch(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Backend event handler failed for %s", event)

    async def aclose(self) -> None:
        task = self._task
        self._stop()
        self._handlers.clear()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _has_stream_handlers(self) -> bool:
        return any(
            handlers
            for event, handlers in self._handlers.items()
            if event != STREAM_ERROR_EVENT
        )

    def _ensure_running(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def _stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                async for event, data in self._backend.stream_events():
                    self._dispatch_raw(event, data)
                reason = "Timer backend event stream closed"
            except (httpx.HTTPError, TimerBackendError) as exc:
                reason = f"Timer backend event stream failed: {exc}"
            logger.warning("%s; reconnecting in %ss", reason, self._reconnect_seconds)
            self.dispatch(STREAM_ERROR_EVENT, reason)
            await asyncio.sleep(self._reconnect_seconds)

    def _dispatch_raw(self, event: str, data: str) -> None:
        if event not in self._handlers:
            return
        try:
            payload = json.loads(data)
        except ValueError:
            logger.warning("Dropping non-JSON %s event from timer backend", event)
            return
        self.dispatch(event, payload)


class TimerBackend:
    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 3,
        reconnect_seconds: float = 2.0,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = httpx.Timeout(timeout_seconds)
        self._retry_attempts = retry_attempts
        self.events = BackendEventStream(self, reconnect_seconds=reconnect_seconds)

    def _headers(self, *, accept: str = "application/json") -> dict[str, str]:
        h = {"accept": accept}
        if self._api_token:
            h["authorization"] = f"Bearer {self._api_token}"
        return h

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        code: str | None = None
        message: str | None = None
        hint: str | None = None
        details: Any | None = None

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                code = payload.get("code") if isinstance(payload.get("code"), str) else None
                message = (
                    payload.get("message")
                    if isinstance(payload.get("message"), str)
                    else None
                )
                hint = payload.get("hint") if isinstance(payload.get("hint"), str) else None
                details = payload.get("details")
            elif isinstance(payload, str):
                message = payload
        except ValueError:
            payload = None

        if not message:
            message = resp.text.strip() or None

        raise TimerBackendError(
            status_code=resp.status_code,
            code=code,
            message=message or f"Timer backend request failed ({resp.status_code})",
            hint=hint,
            details=details,
        )

    async def _send(
        self, method: str, path: str, *, json_body: Any | None = None
    ) -> Any:
        try:
            resp = await get_http().request(
                method,
                f"{self._base}{path}",
                headers=self._headers(),
                json=json_body,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise TimerBackendError(
                status_code=503,
                code="BACKEND_UNREACHABLE",
                message=f"Timer backend is unreachable: {exc}",
                hint="Make sure the timer backend is running.",
            ) from exc
        self._raise_for_error(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise TimerBackendError(
                status_code=502,
                code="INVALID_BACKEND_PAYLOAD",
                message="Timer backend answered with a non-JSON body",
            ) from exc

    async def _read(self, path: str) -> Any:
        # Reads are idempotent: retry transient failures; mutations never retry.
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential_jitter(initial=0.2, max=2.0),
            retry=retry_if_exception(_is_retryable_exception),
            reraise=True,
            before_sleep=_before_sleep_log,
        ):
            with attempt:
                return await self._send("GET", path)
        raise RuntimeError("Timer backend read finished without a response")

    def _parse(self, model: type[ModelT], payload: Any) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise TimerBackendError(
                status_code=502,
                code="INVALID_BACKEND_PAYLOAD",
                message=f"Timer backend sent an unreadable {model.__name__}",
                hint="Check that the timer backend and this client agree on the payload format.",
                details=exc.errors(include_url=False, include_input=False),
            ) from exc

    async def get_state(self) -> TimerSnapshot:
        return self._parse(TimerSnapshot, await self._read("/timer/state"))

    async def get_insights(self) -> InsightsSnapshot:
        return self._parse(InsightsSnapshot, await self._read("/insights"))

    async def start(self) -> TimerSnapshot:
        return self._parse(TimerSnapshot, await self._send("POST", "/timer/start"))

    async def resume(self) -> TimerSnapshot:
        return self._parse(TimerSnapshot, await self._send("POST", "/timer/resume"))

    async def reset(self) -> TimerSnapshot:
        return self._parse(TimerSnapshot, await self._send("POST", "/timer/reset"))

    async def update_settings(self, timer_settings: TimerSettings) -> TimerSnapshot:
        body = {"settings": timer_settings.model_dump(mode="json", by_alias=True)}
        return self._parse(
            TimerSnapshot, await self._send("PUT", "/timer/settings", json_body=body)
        )

    async def update_goals(self, goals: GoalSettings) -> InsightsSnapshot:
        body = {"goals": goals.model_dump(mode="json", by_alias=True)}
        return self._parse(
            InsightsSnapshot, await self._send("PUT", "/insights/goals", json_body=body)
        )

    async def stream_events(self) -> AsyncIterator[tuple[str, str]]:
        # No read timeout: the stream stays idle between events.
        timeout = httpx.Timeout(self._timeout.connect, read=None)
        async with get_http().stream(
            "GET",
            f"{self._base}/events",
            headers=self._headers(accept="text/event-stream"),
            timeout=timeout,
        ) as resp:
            if resp.status_code >= 400:
                await resp.aread()
                self._raise_for_error(resp)
            async for item in iter_sse_events(resp.aiter_lines()):
                yield item

    def on_tick(self, handler: Callable[[TimerSnapshot], None]) -> Unsubscribe:
        return self.events.subscribe(
            TICK_EVENT, lambda payload: handler(TimerSnapshot.model_validate(payload))
        )

    def on_phase_completed(
        self, handler: Callable[[PhaseCompletedPayload], None]
    ) -> Unsubscribe:
        return self.events.subscribe(
            PHASE_COMPLETED_EVENT,
            lambda payload: handler(PhaseCompletedPayload.model_validate(payload)),
        )

    def on_productivity_updated(
        self, handler: Callable[[InsightsSnapshot], None]
    ) -> Unsubscribe:
        return self.events.subscribe(
            PRODUCTIVITY_UPDATED_EVENT,
            lambda payload: handler(InsightsSnapshot.model_validate(payload)),
        )

    def on_stream_error(self, handler: Callable[[str], None]) -> Unsubscribe:
        return self.events.subscribe(STREAM_ERROR_EVENT, handler)

    async def aclose(self) -> None:
        await self.events.aclose()


_backend: TimerBackend | None = None


def get_backend() -> TimerBackend:
    global _backend
    if _backend is None:
        _backend = TimerBackend(
            str(settings.backend_url),
            api_token=settings.backend_token,
            timeout_seconds=settings.backend_timeout_seconds,
            retry_attempts=settings.backend_retry_attempts,
            reconnect_seconds=settings.backend_reconnect_seconds,
        )
    return _backend


async def close_backend() -> None:
    global _backend
    if _backend is not None:
        await _backend.aclose()
        _backend = None
