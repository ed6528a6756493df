from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import ForbiddenError, StalePeriodError, ValidationError
from app.crud import incident as store
from app.models.approval_request import ApprovalRequest
from app.models.audit_log import AuditLog
from app.schemas.incident import IncidentCreate
from app.services import incident_workflow


def last_month(dt: datetime) -> datetime:
    """A moment in the calendar month before `dt`."""
    return dt.replace(day=1, hour=12, minute=0, second=0, microsecond=0) - timedelta(days=1)


def test_admin_edit_applies_directly(db, refs, users, make_incident):
    inc = make_incident()
    result = incident_workflow.request_edit(db, inc.id, {"criticality_id": refs.high.id}, users.admin)

    assert result.outcome == "applied"
    assert result.message_key == "incident.updated"
    assert result.incident.criticality_name == "High"
    assert result.incident.updated_by == users.admin.id
    assert db.query(ApprovalRequest).count() == 0
    assert db.query(AuditLog).filter(AuditLog.action == "INCIDENT_UPDATED").count() == 1


def test_admin_delete_applies_directly(db, users, make_incident):
    inc = make_incident()
    result = incident_workflow.request_delete(db, inc.id, users.admin)

    assert result.outcome == "deleted"
    assert result.message_key == "incident.deleted"
    assert store.get_incident(db, inc.id) is None


@pytest.mark.parametrize("who", ["gestor", "operador"])
def test_non_admin_changes_are_queued(db, refs, users, make_incident, who):
    inc = make_incident()
    actor = getattr(users, who)

    edit = incident_workflow.request_edit(db, inc.id, {"criticality_id": refs.high.id}, actor)
    delete = incident_workflow.request_delete(db, inc.id, actor)

    assert edit.outcome == delete.outcome == "pending_approval"
    assert edit.message_key == "approval.submitted"
    assert edit.request.requester_role == who
    assert delete.request.operation == "delete"

    db.refresh(inc)
    assert inc.criticality_id == refs.low.id


def test_cliente_is_forbidden(db, refs, users, make_incident):
    inc = make_incident()
    with pytest.raises(ForbiddenError):
        incident_workflow.request_edit(db, inc.id, {"criticality_id": refs.high.id}, users.cliente)
    with pytest.raises(ForbiddenError):
        incident_workflow.create_incident(
            db,
            IncidentCreate(
                start_at=inc.start_at,
                type_id=refs.network.id,
                environment_id=refs.dc.id,
                segment_id=refs.core.id,
                criticality_id=refs.low.id,
                description="x",
            ),
            users.cliente,
        )


# -----------------------------
# Scenario C: last month's incident is locked, even for admins
# -----------------------------
@pytest.mark.parametrize("who", ["admin", "gestor", "operador"])
def test_last_month_incident_is_locked(db, refs, users, make_incident, who):
    inc = make_incident()
    inc.created_at = last_month(inc.created_at)
    db.commit()
    actor = getattr(users, who)

    with pytest.raises(StalePeriodError) as exc:
        incident_workflow.request_delete(db, inc.id, actor)
    assert exc.value.message_key == "incident.period_closed"

    with pytest.raises(StalePeriodError):
        incident_workflow.request_edit(db, inc.id, {"description": "late fix"}, actor)

    assert store.get_incident(db, inc.id) is not None
    assert db.query(ApprovalRequest).count() == 0


def test_create_records_audit(db, refs, users):
    result = incident_workflow.create_incident(
        db,
        IncidentCreate(
            start_at="2026-10-10T08:00:00",
            end_at="2026-10-10T08:20:00",
            type_id=refs.power.id,
            environment_id=refs.cloud.id,
            segment_id=refs.compute.id,
            criticality_id=refs.medium.id,
            description="UPS failover",
        ),
        users.operador,
    )
    assert result.outcome == "applied"
    assert result.message_key == "incident.created"
    assert result.incident.duration_minutes == 20
    assert result.incident.environment_name == "Cloud"
    assert db.query(AuditLog).filter(AuditLog.action == "INCIDENT_CREATED").count() == 1


def test_direct_delete_blocked_by_constraint_is_validation_error(db, users, make_incident, monkeypatch):
    inc = make_incident()

    def failing_delete(*args, **kwargs):
        raise IntegrityError("DELETE FROM incidents", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(store, "delete_incident", failing_delete)

    with pytest.raises(ValidationError) as exc:
        incident_workflow.request_delete(db, inc.id, users.admin)
    assert exc.value.message_key == "error.constraint"

    db.expire_all()
    assert store.get_incident(db, inc.id) is not None
    assert db.query(AuditLog).filter(AuditLog.action == "INCIDENT_DELETED").count() == 0
