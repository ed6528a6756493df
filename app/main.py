# app/main.py
from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from dotenv import load_dotenv, find_dotenv

# ---------------------------
# Env loading (root .env first, then app/.env as fallback)
# ---------------------------
# 1) root .env (if present)
load_dotenv(find_dotenv(usecwd=True))
# 2) app/.env (do not override values already loaded)
load_dotenv(Path(__file__).resolve().parent / ".env", override=False)

from app.core.logging_config import configure_logging

configure_logging()
log = logging.getLogger("app.main")

# --- DB engine (must be imported BEFORE create_all) ---
from app.db.session import engine

# ---------------------------
# MODELS (registers every table on Base.metadata)
# ---------------------------
from app.models import Base

# ---------------------------
# ROUTERS
# ---------------------------
from app.api import health
from app.api.v1 import approvals, audit_logs, incidents, me, reference, reports

from app.core.errors import register_exception_handlers
from app.middleware.request_logging import RequestLoggingMiddleware
from app.services.pending_count import stop_all as stop_pending_count_notifiers
from app.worker.scheduler import make_scheduler

# ---------------------------
# CREATE TABLES (dev-only; guard with env, Alembic owns the schema otherwise)
# ---------------------------
ENABLE_CREATE_ALL = os.getenv("ENABLE_CREATE_ALL", "1") == "1"

if ENABLE_CREATE_ALL:
    Base.metadata.create_all(bind=engine)

# ---------------------------
# APP
# ---------------------------
app = FastAPI(title="Ops Center")

app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

# ---------------------------
# ROUTER MOUNT
# ---------------------------
app.include_router(me.router, prefix="/api/v1", tags=["me"])
app.include_router(reference.router, prefix="/api/v1", tags=["reference"])
app.include_router(incidents.router, prefix="/api/v1", tags=["incidents"])
app.include_router(approvals.router, prefix="/api/v1", tags=["approvals"])
app.include_router(reports.router, prefix="/api/v1", tags=["reports"])
app.include_router(audit_logs.router, prefix="/api/v1", tags=["audit"])
app.include_router(health.router, prefix="/api", tags=["health"])


# ---------------------------
# Scheduler (pending-approval counters)
# ---------------------------
@app.on_event("startup")
def _start_scheduler():
    # Enable with ENABLE_SCHEDULER=1 (default 1). Interval via PENDING_COUNT_INTERVAL_SECONDS.
    app.state.scheduler = None
    if os.getenv("ENABLE_SCHEDULER", "1") != "1":
        return
    try:
        sched = make_scheduler()
        sched.start()
        app.state.scheduler = sched
    except Exception:
        # keep API running if scheduler fails; pending-count falls back to direct counts
        log.exception("scheduler failed to start")
        stop_pending_count_notifiers()


@app.on_event("shutdown")
def _stop_scheduler():
    stop_pending_count_notifiers()
    sched = getattr(app.state, "scheduler", None)
    if sched:
        sched.shutdown(wait=False)


# ---------------------------
# OpenAPI (bearer auth; tokens come from the identity provider)
# ---------------------------
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="Ops Center",
        version="1.0.0",
        description="Incident registry with change approvals",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})
    openapi_schema["components"]["securitySchemes"]["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
