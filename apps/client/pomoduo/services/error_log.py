from __future__ import annotations

import logging
from typing import Any

import sentry_sdk

logger = logging.getLogger(__name__)


def log_system_error(
    *,
    route: str,
    message: str,
    err: BaseException | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    # Best-effort logging; never raise.
    try:
        logger.error(
            "%s (route=%s meta=%s)",
            message,
            route,
            meta or {},
            exc_info=(type(err), err, err.__traceback__) if err is not None else None,
        )
        if err is not None:
            with sentry_sdk.new_scope() as scope:
                scope.set_tag("route", route)
                scope.set_context("meta", meta or {})
                sentry_sdk.capture_exception(err)
    except Exception:
        return
