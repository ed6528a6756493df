# app/worker/scheduler.py
from __future__ import annotations

import logging
import os

from apscheduler.schedulers.background import BackgroundScheduler
from tzlocal import get_localzone

from app.core.roles import Capability, Role, has_capability
from app.db.session import SessionLocal
from app.services.pending_count import PendingCountNotifier, interval_from_env, register

log = logging.getLogger("app.scheduler")


def start_pending_count_notifiers(sched: BackgroundScheduler) -> int:
    """Register and start one notifier per role that can approve requests."""
    interval = interval_from_env()
    started = 0
    for role in Role:
        if not has_capability(role, Capability.APPROVE_REQUESTS):
            continue
        notifier = PendingCountNotifier(
            role,
            session_factory=SessionLocal,
            interval_seconds=interval,
            scheduler=sched,
        )
        if notifier.start():
            register(notifier)
            started += 1
    log.info("pending-count notifiers started: %s (every %ss)", started, interval)
    return started


def make_scheduler() -> BackgroundScheduler:
    """
    Create and return a BackgroundScheduler instance configured from env:
      - APP_TIMEZONE                     (default: system tz via tzlocal or 'UTC')
      - PENDING_COUNT_INTERVAL_SECONDS   (default: 60)
    """
    try:
        tzname = os.getenv("APP_TIMEZONE") or str(get_localzone())
    except Exception:
        tzname = "UTC"

    sched = BackgroundScheduler(timezone=tzname)
    start_pending_count_notifiers(sched)
    return sched
