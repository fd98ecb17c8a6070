from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from pomoduo.core.config import settings
from pomoduo.routes.insights import router as insights_router
from pomoduo.routes.timer import router as timer_router
from pomoduo.schemas.common import ErrorDetail
from pomoduo.services.calendar_keys import MalformedKeyError
from pomoduo.services.error_log import log_system_error
from pomoduo.services.timer_backend import TimerBackendError, close_backend, close_http


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await close_backend()
    await close_http()


app = FastAPI(title="Pomoduo Client", version="0.1.0", lifespan=lifespan)

logging.getLogger("pomoduo").setLevel(settings.log_level)


def _init_sentry() -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=max(0.0, min(settings.sentry_traces_sample_rate, 1.0)),
        send_default_pii=False,
        environment=settings.app_env,
    )


_init_sentry()


app.add_middleware(
    CORSMiddleware,
    # The view server only ever serves a local UI shell.
    allow_origins=[
        "http://localhost:1420",
        "http://127.0.0.1:1420",
        "tauri://localhost",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _report(
    request: Request, message: str, *, err: BaseException | None = None, **meta: Any
) -> None:
    log_system_error(
        route=request.url.path,
        message=message,
        err=err,
        meta={"method": request.method, **meta},
    )


def _error_response(
    status_code: int, *, message: str, hint: str | None, code: str | None
) -> JSONResponse:
    detail = ErrorDetail(message=message, hint=hint, code=code)
    return JSONResponse(status_code=status_code, content={"detail": detail.model_dump()})


@app.middleware("http")
async def report_server_errors(request: Request, call_next):
    response = await call_next(request)
    if response.status_code >= 500:
        _report(
            request,
            f"View server answered {response.status_code}",
            status_code=response.status_code,
        )
    return response


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.exception_handler(TimerBackendError)
async def timer_backend_error_handler(request: Request, exc: TimerBackendError):
    _report(
        request,
        "Timer backend request failed",
        err=exc,
        backend_status=exc.status_code,
        backend_code=exc.code,
    )
    # Backend 4xx keep their status; anything else is a bad gateway.
    status_code = exc.status_code if 400 <= exc.status_code < 500 else 502
    return _error_response(
        status_code,
        message="Timer backend request failed.",
        hint=exc.hint or str(exc) or None,
        code=exc.code,
    )


@app.exception_handler(MalformedKeyError)
async def malformed_key_error_handler(request: Request, exc: MalformedKeyError):
    _report(
        request, "Timer backend returned a malformed day key", err=exc, key=str(exc.key)
    )
    return _error_response(
        502,
        message="Timer backend returned malformed activity data.",
        hint=str(exc),
        code="MALFORMED_DAY_KEY",
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    _report(request, "Unhandled view server error", err=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(timer_router, prefix="/api")
app.include_router(insights_router, prefix="/api")
