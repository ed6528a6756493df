# app/services/pending_count.py
"""
Periodic pending-approval counter, one per approver role.

Each refresh runs in its own DB session on an APScheduler interval job.
Refreshes may overlap; a refresh publishes only if no newer one already has,
so a slow query never overwrites a fresher count.
"""
from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.roles import Capability, Role, has_capability
from app.db.session import SessionLocal
from app.services.approvals import count_pending

log = logging.getLogger("app.pending_count")

DEFAULT_INTERVAL_SECONDS = 60


def interval_from_env() -> int:
    raw = os.getenv("PENDING_COUNT_INTERVAL_SECONDS", "")
    return int(raw) if raw.isdigit() and int(raw) > 0 else DEFAULT_INTERVAL_SECONDS


class PendingCountNotifier:
    def __init__(
        self,
        role: Role,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[int] = None,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.role = role
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or interval_from_env()
        self.scheduler = scheduler

        self._lock = threading.Lock()
        self._issued = 0
        self._published = 0
        self._count = 0
        self._refreshed_at: Optional[datetime] = None
        self._job_id: Optional[str] = None

    # -----------------------------
    # State
    # -----------------------------
    @property
    def count(self) -> int:
        return self._count

    @property
    def refreshed_at(self) -> Optional[datetime]:
        return self._refreshed_at

    @property
    def running(self) -> bool:
        return self._job_id is not None

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def start(self) -> bool:
        """
        Refresh once, then schedule the interval job.
        Returns False (and does nothing) for roles that cannot approve.
        """
        if not has_capability(self.role, Capability.APPROVE_REQUESTS):
            log.debug("pending-count notifier not started for role %s", self.role.value)
            return False

        self.refresh()

        if self.scheduler is not None:
            job = self.scheduler.add_job(
                self.refresh,
                IntervalTrigger(seconds=self.interval_seconds),
                id=f"pending_count_{self.role.value}",
                replace_existing=True,
                max_instances=3,
                coalesce=False,
            )
            self._job_id = job.id
        return True

    def stop(self) -> None:
        if self.scheduler is not None and self._job_id is not None:
            try:
                self.scheduler.remove_job(self._job_id)
            except JobLookupError:
                pass
        self._job_id = None

    # -----------------------------
    # Refresh
    # -----------------------------
    def _next_ticket(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def _publish(self, ticket: int, count: int) -> bool:
        with self._lock:
            if ticket <= self._published:
                return False
            self._published = ticket
            self._count = count
            self._refreshed_at = utcnow()
            return True

    def refresh(self) -> int:
        """Recount and publish; on failure keep (and return) the last known count."""
        ticket = self._next_ticket()
        db = self.session_factory()
        try:
            value = count_pending(db, self.role)
        except Exception:
            db.rollback()
            log.warning(
                "pending-count refresh failed for role %s; keeping %s",
                self.role.value,
                self._count,
                exc_info=True,
            )
            return self._count
        finally:
            db.close()

        if not self._publish(ticket, value):
            log.debug("pending-count refresh %s for %s superseded", ticket, self.role.value)
        return self._count


# -----------------------------
# Registry (one notifier per role, set up by the scheduler)
# -----------------------------
_registry: Dict[Role, PendingCountNotifier] = {}


def register(notifier: PendingCountNotifier) -> None:
    _registry[notifier.role] = notifier


def get_notifier(role: Optional[Role]) -> Optional[PendingCountNotifier]:
    if role is None:
        return None
    return _registry.get(role)


def stop_all() -> None:
    for notifier in list(_registry.values()):
        notifier.stop()
    _registry.clear()
