from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.clock import utcnow
from app.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    StorePassthroughError,
    ValidationError,
)
from app.core.roles import Role
from app.crud import incident as store
from app.models.approval_request import ApprovalRequest
from app.models.audit_log import AuditLog
from app.models.segment import Segment
from app.schemas.approval_request import ApprovalFilter
from app.schemas.snapshot import IncidentSnapshot
from app.services import approvals


def _submit_edit(db, incident, requester, **changes):
    return approvals.submit_request(
        db, operation="edit", incident=incident, requester=requester, proposed_changes=changes
    )


# -----------------------------
# Submit
# -----------------------------
def test_submit_edit_snapshots_both_states(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.medium.id)

    assert req.status == "pending"
    assert req.requester_role == "operador"
    assert req.environment_id == refs.dc.id

    before = approvals.before_snapshot(req)
    after = approvals.after_snapshot(req)
    assert before.requester_role == "operador"
    assert before.criticality_name == "Low"
    assert after.criticality_id == refs.medium.id
    assert after.criticality_name == "Medium"
    assert after.description == inc.description

    # incident untouched until approval
    db.refresh(inc)
    assert inc.criticality_id == refs.low.id


def test_submit_edit_recomputes_duration(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, end_at=inc.start_at + timedelta(minutes=45))
    assert approvals.after_snapshot(req).duration_minutes == 45


def test_submit_delete_has_no_after_snapshot(db, users, make_incident):
    inc = make_incident()
    req = approvals.submit_request(db, operation="delete", incident=inc, requester=users.gestor)
    assert req.after_snapshot is None
    assert req.requester_role == "gestor"


def test_submit_rejects_no_op_edit(db, users, make_incident):
    inc = make_incident()
    with pytest.raises(ValidationError) as exc:
        _submit_edit(db, inc, users.operador, description=inc.description)
    assert exc.value.message_key == "incident.no_changes"
    assert db.query(ApprovalRequest).count() == 0


def test_submit_rejects_incomplete_after_state(db, users, make_incident):
    inc = make_incident()
    with pytest.raises(ValidationError) as exc:
        _submit_edit(db, inc, users.operador, description="  ")
    assert exc.value.message_key == "incident.required_fields"


def test_submit_rejects_segment_outside_environment(db, refs, users, make_incident):
    inc = make_incident()
    with pytest.raises(ValidationError) as exc:
        _submit_edit(db, inc, users.operador, environment_id=refs.cloud.id)
    assert exc.value.message_key == "incident.segment_environment_mismatch"


def test_submit_writes_audit_entry(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.high.id)
    entry = db.query(AuditLog).filter(AuditLog.action == "APPROVAL_REQUESTED").one()
    assert entry.entity_id == inc.id
    assert entry.meta["request_id"] == req.id


# -----------------------------
# Diff
# -----------------------------
def test_diff_reports_exactly_the_changed_fields(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(
        db,
        inc,
        users.operador,
        segment_id=refs.storage.id,
        actions_taken="Rebooted switch",
    )
    changes = approvals.diff_request(req)
    assert [(c.field, c.before, c.after) for c in changes] == [
        ("segment", "Core", "Storage"),
        ("actions_taken", None, "Rebooted switch"),
    ]


def test_diff_falls_back_to_ids_without_names():
    before = IncidentSnapshot(type_id=1, type_name=None, description="a")
    after = IncidentSnapshot(type_id=2, type_name="Power", description="a")
    changes = approvals.diff_snapshots(before, after)
    assert [(c.field, c.before, c.after) for c in changes] == [("type", 1, "Power")]


def test_diff_detects_reference_change_behind_identical_names():
    before = IncidentSnapshot(type_id=1, type_name="Network", description="a")
    after = IncidentSnapshot(type_id=2, type_name="Network", description="a")
    changes = approvals.diff_snapshots(before, after)
    assert [(c.field, c.before, c.after) for c in changes] == [("type", "Network", "Network")]


def test_move_to_same_named_segment_in_other_environment(db, refs, users, make_incident):
    twin = Segment(name="Core", environment_id=refs.cloud.id)
    db.add(twin)
    db.commit()

    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, environment_id=refs.cloud.id, segment_id=twin.id)

    changes = approvals.diff_request(req)
    assert [(c.field, c.before, c.after) for c in changes] == [
        ("environment", "Datacenter A", "Cloud"),
        ("segment", "Core", "Core"),
    ]

    approvals.approve_request(db, req.id, users.gestor)
    db.expire_all()
    assert store.get_incident(db, inc.id).segment_id == twin.id


def test_diff_of_delete_is_single_sentinel(db, users, make_incident):
    inc = make_incident()
    req = approvals.submit_request(db, operation="delete", incident=inc, requester=users.operador)
    changes = approvals.diff_request(req)
    assert len(changes) == 1
    assert changes[0].kind == "deletion"
    assert changes[0].before == inc.id


# -----------------------------
# Scenario A: operador edit -> pending with one criticality entry
# -----------------------------
def test_operador_criticality_edit_then_gestor_approves(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.medium.id)

    changes = approvals.diff_request(req)
    assert [(c.field, c.before, c.after) for c in changes] == [("criticality", "Low", "Medium")]

    approved = approvals.approve_request(db, req.id, users.gestor)
    assert approved.status == "approved"
    assert approved.resolver_id == users.gestor.id
    assert approved.resolved_at is not None

    db.refresh(inc)
    assert inc.criticality_id == refs.medium.id
    assert inc.updated_by == users.gestor.id


# -----------------------------
# Scenario B: gestor cannot approve a gestor's request
# -----------------------------
def test_gestor_cannot_approve_peer_request(db, refs, users, make_incident):
    inc = make_incident(created_by=users.gestor)
    req = _submit_edit(db, inc, users.gestor, criticality_id=refs.high.id)

    with pytest.raises(ForbiddenError):
        approvals.approve_request(db, req.id, users.gestor2)

    db.refresh(req)
    assert req.status == "pending"

    approvals.approve_request(db, req.id, users.admin)
    db.refresh(inc)
    assert inc.criticality_id == refs.high.id


def test_operador_cannot_resolve(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.gestor, criticality_id=refs.high.id)
    with pytest.raises(ForbiddenError):
        approvals.reject_request(db, req.id, users.operador, "no")


# -----------------------------
# Approve twice / concurrent approvals (Scenario D)
# -----------------------------
def test_second_approval_is_invalid_state(db, refs, users, make_incident):
    inc = make_incident()
    req = approvals.submit_request(db, operation="delete", incident=inc, requester=users.operador)

    approvals.approve_request(db, req.id, users.gestor)
    with pytest.raises(InvalidStateError):
        approvals.approve_request(db, req.id, users.admin)

    assert store.get_incident(db, inc.id) is None
    assert db.query(AuditLog).filter(AuditLog.action == "APPROVAL_APPROVED").count() == 1


def test_concurrent_approvals_exactly_one_wins(session_factory, db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, end_at=inc.start_at + timedelta(minutes=10))
    req_id, inc_id = req.id, inc.id
    gestor_id, admin_id = users.gestor.id, users.admin.id

    s1, s2 = session_factory(), session_factory()
    try:
        from app.models.user import User

        gestor = s1.get(User, gestor_id)
        admin = s2.get(User, admin_id)
        # second session has already seen the request as pending
        assert s2.get(ApprovalRequest, req_id).status == "pending"

        approvals.approve_request(s1, req_id, gestor)
        with pytest.raises(InvalidStateError):
            approvals.approve_request(s2, req_id, admin)
    finally:
        s1.close()
        s2.close()

    db.expire_all()
    final = db.get(ApprovalRequest, req_id)
    assert final.status == "approved"
    assert final.resolver_id == gestor_id
    assert store.get_incident(db, inc_id).duration_minutes == 10


def test_failed_apply_leaves_request_pending(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, segment_id=refs.storage.id)

    # Storage moves to another environment before the approval is applied
    refs.storage.environment_id = refs.cloud.id
    db.commit()

    with pytest.raises(ValidationError):
        approvals.approve_request(db, req.id, users.gestor)

    db.expire_all()
    assert db.get(ApprovalRequest, req.id).status == "pending"
    assert store.get_incident(db, inc.id).segment_id == refs.core.id


def test_store_constraint_during_apply_is_validation_error(db, refs, users, make_incident, monkeypatch):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.medium.id)

    def failing_update(*args, **kwargs):
        raise IntegrityError("UPDATE incidents", {}, Exception("CHECK constraint failed"))

    monkeypatch.setattr(approvals, "update_incident", failing_update)

    with pytest.raises(ValidationError) as exc:
        approvals.approve_request(db, req.id, users.gestor)
    assert exc.value.message_key == "error.constraint"

    db.expire_all()
    assert db.get(ApprovalRequest, req.id).status == "pending"
    assert db.query(AuditLog).filter(AuditLog.action == "APPROVAL_APPROVED").count() == 0


def test_store_outage_during_apply_is_passthrough(db, refs, users, make_incident, monkeypatch):
    inc = make_incident()
    req = approvals.submit_request(db, operation="delete", incident=inc, requester=users.operador)

    def failing_delete(*args, **kwargs):
        raise OperationalError("DELETE FROM incidents", {}, Exception("database is locked"))

    monkeypatch.setattr(approvals, "delete_incident", failing_delete)

    with pytest.raises(StorePassthroughError):
        approvals.approve_request(db, req.id, users.admin)

    db.expire_all()
    assert db.get(ApprovalRequest, req.id).status == "pending"
    assert store.get_incident(db, inc.id) is not None


# -----------------------------
# Vanished incident
# -----------------------------
def test_approval_of_vanished_incident_records_note(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.medium.id)
    store.delete_incident(db, inc.id)

    approved = approvals.approve_request(db, req.id, users.admin)
    assert approved.status == "approved"
    assert "no longer exists" in approved.resolution_note


# -----------------------------
# Reject (Scenario E)
# -----------------------------
@pytest.mark.parametrize("reason", [None, "", "   \n"])
def test_reject_requires_reason(db, refs, users, make_incident, reason):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.medium.id)

    with pytest.raises(ValidationError) as exc:
        approvals.reject_request(db, req.id, users.gestor, reason)
    assert exc.value.message_key == "approval.reason_required"

    db.refresh(req)
    assert req.status == "pending"


def test_reject_stores_stripped_reason_and_keeps_incident(db, refs, users, make_incident):
    inc = make_incident()
    req = _submit_edit(db, inc, users.operador, criticality_id=refs.medium.id)

    rejected = approvals.reject_request(db, req.id, users.gestor, "  duplicate of #12  ")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "duplicate of #12"

    db.refresh(inc)
    assert inc.criticality_id == refs.low.id

    with pytest.raises(InvalidStateError):
        approvals.approve_request(db, req.id, users.admin)


def test_unknown_request_not_found(db, users):
    with pytest.raises(NotFoundError):
        approvals.approve_request(db, 12345, users.admin)


# -----------------------------
# Listing
# -----------------------------
def test_listing_scoped_by_viewer_role(db, refs, users, make_incident):
    a = make_incident()
    b = make_incident(created_by=users.gestor)
    from_operador = _submit_edit(db, a, users.operador, criticality_id=refs.high.id)
    from_gestor = _submit_edit(db, b, users.gestor, criticality_id=refs.high.id)

    gestor_view = approvals.list_pending(db, ApprovalFilter(), users.gestor)
    admin_view = approvals.list_pending(db, ApprovalFilter(), users.admin)

    assert [r.id for r in gestor_view] == [from_operador.id]
    assert [r.id for r in admin_view] == [from_gestor.id, from_operador.id]

    assert approvals.count_pending(db, Role.GESTOR) == 1
    assert approvals.count_pending(db, Role.ADMIN) == 2

    with pytest.raises(ForbiddenError):
        approvals.get_request(db, from_gestor.id, users.gestor)
    with pytest.raises(ForbiddenError):
        approvals.list_pending(db, ApprovalFilter(), users.operador)


def test_listing_filters(db, refs, users, make_incident):
    dc_inc = make_incident()
    cloud_inc = make_incident(environment_id=refs.cloud.id, segment_id=refs.compute.id)
    dc_req = _submit_edit(db, dc_inc, users.operador, criticality_id=refs.high.id)
    cloud_req = approvals.submit_request(db, operation="delete", incident=cloud_inc, requester=users.operador)

    approvals.reject_request(db, dc_req.id, users.gestor, "wrong")
    # deleting the incident must not hide its request from the environment filter
    approvals.approve_request(db, cloud_req.id, users.gestor)

    by_env = approvals.list_pending(
        db, ApprovalFilter(status=None, environment_id=refs.cloud.id), users.admin
    )
    assert [r.id for r in by_env] == [cloud_req.id]

    assert approvals.list_pending(db, ApprovalFilter(), users.admin) == []
    rejected = approvals.list_pending(db, ApprovalFilter(status="rejected"), users.admin)
    assert [r.id for r in rejected] == [dc_req.id]

    today = utcnow().date()
    assert len(approvals.list_pending(db, ApprovalFilter(status=None, date_to=today), users.admin)) == 2
    assert approvals.list_pending(
        db, ApprovalFilter(status=None, date_from=today + timedelta(days=1)), users.admin
    ) == []
    assert approvals.list_pending(
        db, ApprovalFilter(status=None, date_to=date(2000, 1, 1)), users.admin
    ) == []
