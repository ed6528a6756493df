import logging

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import OperationalError

from app.core.roles import Role
from app.services import approvals
from app.services.pending_count import PendingCountNotifier


class _BrokenSession:
    def query(self, *args, **kwargs):
        raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.fixture
def scheduler():
    # never started: jobs stay pending, which is enough to inspect them
    return BackgroundScheduler()


@pytest.fixture
def pending(db, refs, users, make_incident):
    inc = make_incident()
    approvals.submit_request(db, operation="delete", incident=inc, requester=users.operador)
    approvals.submit_request(
        db,
        operation="edit",
        incident=make_incident(created_by=users.gestor),
        requester=users.gestor,
        proposed_changes={"criticality_id": refs.high.id},
    )


def test_start_refreshes_and_schedules(session_factory, scheduler, pending):
    notifier = PendingCountNotifier(Role.GESTOR, session_factory, interval_seconds=5, scheduler=scheduler)

    assert notifier.start() is True
    assert notifier.count == 1
    assert notifier.refreshed_at is not None
    assert notifier.running

    job = scheduler.get_job("pending_count_gestor")
    assert job is not None
    assert job.trigger.interval.total_seconds() == 5

    notifier.stop()
    assert scheduler.get_job("pending_count_gestor") is None
    assert not notifier.running


def test_admin_counts_every_visible_request(session_factory, pending):
    notifier = PendingCountNotifier(Role.ADMIN, session_factory)
    assert notifier.refresh() == 2


@pytest.mark.parametrize("role", [Role.OPERADOR, Role.CLIENTE])
def test_not_started_for_roles_without_approval(session_factory, scheduler, role):
    notifier = PendingCountNotifier(role, session_factory, scheduler=scheduler)
    assert notifier.start() is False
    assert not notifier.running
    assert scheduler.get_jobs() == []
    assert notifier.refreshed_at is None


def test_failed_refresh_keeps_last_count(session_factory, pending, caplog):
    notifier = PendingCountNotifier(Role.ADMIN, session_factory)
    assert notifier.refresh() == 2
    stamp = notifier.refreshed_at

    notifier.session_factory = _BrokenSession
    with caplog.at_level(logging.WARNING, logger="app.pending_count"):
        assert notifier.refresh() == 2

    assert notifier.count == 2
    assert notifier.refreshed_at == stamp
    assert "refresh failed" in caplog.text


def test_older_refresh_never_overwrites_newer():
    notifier = PendingCountNotifier(Role.ADMIN, session_factory=_BrokenSession)
    first, second = notifier._next_ticket(), notifier._next_ticket()

    assert notifier._publish(second, 7) is True
    assert notifier._publish(first, 3) is False
    assert notifier.count == 7


def test_stop_without_start_is_noop(scheduler):
    notifier = PendingCountNotifier(Role.GESTOR, session_factory=_BrokenSession, scheduler=scheduler)
    notifier.stop()
    assert not notifier.running
