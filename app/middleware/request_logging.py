# app/middleware/request_logging.py
from __future__ import annotations

import logging
import time
import uuid
from typing import Iterable, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("app.request")

QUIET_PREFIXES: Tuple[str, ...] = (
    "/api/healthz",
    "/api/readyz",
    "/api/v1/approvals/pending-count",  # polled by every approver UI
    "/docs",
    "/openapi.json",
)


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request: method, path, status, caller, duration.
    Every response carries X-Request-ID (propagated from the request or generated).
    Polling and framework endpoints are traced but not logged.
    """

    def __init__(self, app, quiet_prefixes: Iterable[str] = QUIET_PREFIXES):
        super().__init__(app)
        self.quiet_prefixes = tuple(quiet_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.trace_id = trace_id

        path = request.url.path
        quiet = request.method == "OPTIONS" or path.startswith(self.quiet_prefixes)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request CRASH %s %s dur_ms=%s trace_id=%s",
                request.method,
                path,
                int((time.perf_counter() - start) * 1000),
                trace_id,
            )
            raise

        response.headers["X-Request-ID"] = trace_id
        if quiet:
            return response

        # user/role are set on request.state by get_current_user
        logger.log(
            _level_for(response.status_code),
            "request %s %s -> %s user=%s role=%s dur_ms=%s trace_id=%s",
            request.method,
            path,
            response.status_code,
            getattr(request.state, "user_id", None),
            getattr(request.state, "role", None),
            int((time.perf_counter() - start) * 1000),
            trace_id,
        )
        return response
