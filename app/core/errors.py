# app/core/errors.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

log = logging.getLogger("app.errors")


# -----------------------------
# Domain errors
# -----------------------------
class DomainError(Exception):
    """
    Base class for errors raised by the services.
    Carries a message key for the presentation layer plus the HTTP status the
    API should answer with.
    """

    status_code = 400
    typ = "domain_error"
    default_message_key = "error.generic"

    def __init__(
        self,
        message: str = "",
        *,
        message_key: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.message_key = message_key or self.default_message_key
        self.details = details


class ValidationError(DomainError):
    status_code = 422
    typ = "validation_error"
    default_message_key = "error.validation"


class NotFoundError(DomainError):
    status_code = 404
    typ = "not_found"
    default_message_key = "error.not_found"


class ForbiddenError(DomainError):
    status_code = 403
    typ = "forbidden"
    default_message_key = "auth.forbidden"


class InvalidStateError(DomainError):
    status_code = 409
    typ = "invalid_state"
    default_message_key = "approval.already_processed"


class StalePeriodError(DomainError):
    status_code = 409
    typ = "stale_period"
    default_message_key = "incident.period_closed"


class StorePassthroughError(DomainError):
    status_code = 503
    typ = "store_error"
    default_message_key = "error.store_unavailable"


# -----------------------------
# Trace / request id helpers
# -----------------------------
def _ensure_trace_id(request: Request) -> str:
    """
    Return a stable trace_id for this request.
    Prefer a value already set on request.state, then common headers,
    and finally generate a new one (and store it on request.state).
    """
    # Already set by middleware?
    for attr in ("trace_id", "request_id"):
        val = getattr(getattr(request, "state", object()), attr, None)
        if val:
            return str(val)

    for h in ("x-request-id", "x-correlation-id", "x-trace-id"):
        v = request.headers.get(h)
        if v:
            request.state.trace_id = v
            return v

    new_id = uuid.uuid4().hex
    request.state.trace_id = new_id
    return new_id


def _payload(
    *,
    message: str,
    typ: str,
    status: int,
    trace_id: str,
    message_key: Optional[str] = None,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "ok": False,
        "error": {
            "type": typ,
            "message": message,
            "message_key": message_key,
            "status": status,
            "trace_id": trace_id,
        },
    }
    if details is not None:
        body["error"]["details"] = details
    return body


# -----------------------------
# Install / register handlers
# -----------------------------
def register_exception_handlers(app: FastAPI) -> None:
    """
    Registers consistent JSON error handlers.
    Also ensures X-Request-ID header is present on error responses.
    """

    @app.exception_handler(DomainError)
    async def domain_exc_handler(request: Request, exc: DomainError):
        trace_id = _ensure_trace_id(request)
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        log.log(
            level,
            "%s %s %s -> %s | trace_id=%s | key=%s | %s",
            exc.__class__.__name__,
            request.method,
            request.url.path,
            exc.status_code,
            trace_id,
            exc.message_key,
            exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            headers={"X-Request-ID": trace_id},
            content=_payload(
                message=exc.message,
                typ=exc.typ,
                status=exc.status_code,
                trace_id=trace_id,
                message_key=exc.message_key,
                details=exc.details,
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exc_handler(request: Request, exc: HTTPException):
        trace_id = _ensure_trace_id(request)
        status_code = int(exc.status_code)
        # detail can be str, dict, or other; keep a safe message
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        details = exc.detail if isinstance(exc.detail, dict) else None

        headers = dict(exc.headers or {})
        headers["X-Request-ID"] = trace_id

        level = logging.ERROR if status_code >= 500 else logging.WARNING
        log.log(
            level,
            "HTTPException %s %s -> %s | trace_id=%s | detail=%r",
            request.method,
            request.url.path,
            status_code,
            trace_id,
            exc.detail,
        )

        return JSONResponse(
            status_code=status_code,
            headers=headers,
            content=_payload(
                message=message,
                typ="http_error",
                status=status_code,
                trace_id=trace_id,
                details=details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):
        trace_id = _ensure_trace_id(request)
        errors = exc.errors()
        log.warning(
            "RequestValidationError %s %s -> 422 | trace_id=%s | errors=%s",
            request.method,
            request.url.path,
            trace_id,
            errors,
        )
        return JSONResponse(
            status_code=422,
            headers={"X-Request-ID": trace_id},
            content=_payload(
                message="Validation failed.",
                typ="validation_error",
                status=422,
                trace_id=trace_id,
                message_key=ValidationError.default_message_key,
                details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
            ),
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_exc_handler(request: Request, exc: SQLAlchemyError):
        trace_id = _ensure_trace_id(request)
        log.exception(
            "Store failure %s %s -> 503 | trace_id=%s",
            request.method,
            request.url.path,
            trace_id,
        )
        return JSONResponse(
            status_code=StorePassthroughError.status_code,
            headers={"X-Request-ID": trace_id},
            content=_payload(
                message="Storage temporarily unavailable.",
                typ=StorePassthroughError.typ,
                status=StorePassthroughError.status_code,
                trace_id=trace_id,
                message_key=StorePassthroughError.default_message_key,
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        trace_id = _ensure_trace_id(request)
        # Full traceback to server logs; generic message to client
        log.exception(
            "Unhandled exception %s %s -> 500 | trace_id=%s",
            request.method,
            request.url.path,
            trace_id,
        )
        return JSONResponse(
            status_code=500,
            headers={"X-Request-ID": trace_id},
            content=_payload(
                message="Internal server error.",
                typ="internal_error",
                status=500,
                trace_id=trace_id,
                message_key="error.internal",
            ),
        )
