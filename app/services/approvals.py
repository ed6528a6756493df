# app/services/approvals.py
"""
Approval request manager.

  submit   -> snapshot the incident (before) and the proposed state (after),
              persist as `pending`
  list     -> newest first, scoped to what the viewer's role may resolve
  diff     -> field-level changes over a fixed comparison table
  approve  -> check-and-set pending->approved, apply the change, one transaction
  reject   -> check-and-set pending->rejected with a mandatory reason

Nothing here retries; a failed call leaves the request as it was.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import (
    DomainError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.roles import (
    Capability,
    Role,
    can_resolve,
    ensure_capability,
    role_of,
    visible_requester_roles,
)
from app.crud import approval_request as crud_requests
from app.crud.base import commit_or_raise, store_error
from app.crud.incident import (
    WRITABLE_FIELDS,
    compute_duration_minutes,
    current_state,
    delete_incident,
    get_incident,
    normalize_changes,
    snapshot_of,
    update_incident,
    validate_classification,
)
from app.models.approval_request import APPROVAL_OPERATIONS, ApprovalRequest
from app.models.incident import Incident
from app.models.user import User
from app.schemas.approval_request import ApprovalFilter
from app.schemas.snapshot import FieldChange, IncidentSnapshot
from app.services.audit import audit_log

log = logging.getLogger("app.approvals")

# (key, label, value attribute, display-name attribute for reference fields)
COMPARISON_TABLE: Tuple[Tuple[str, str, str, Optional[str]], ...] = (
    ("start", "Start", "start_at", None),
    ("end", "End", "end_at", None),
    ("type", "Incident type", "type_id", "type_name"),
    ("environment", "Environment", "environment_id", "environment_name"),
    ("segment", "Segment", "segment_id", "segment_name"),
    ("criticality", "Criticality", "criticality_id", "criticality_name"),
    ("description", "Description", "description", None),
    ("actions_taken", "Actions taken", "actions_taken", None),
)

DELETION_SENTINEL = "deletion_requested"


# -----------------------------
# Snapshots & diff
# -----------------------------
def before_snapshot(request: ApprovalRequest) -> IncidentSnapshot:
    return IncidentSnapshot.model_validate(request.before_snapshot)


def after_snapshot(request: ApprovalRequest) -> Optional[IncidentSnapshot]:
    if request.after_snapshot is None:
        return None
    return IncidentSnapshot.model_validate(request.after_snapshot)


def _display_value(snap: IncidentSnapshot, value_attr: str, name_attr: Optional[str]) -> Any:
    if name_attr is not None:
        name = getattr(snap, name_attr)
        if name is not None:
            return name
    return getattr(snap, value_attr)


def diff_snapshots(before: IncidentSnapshot, after: IncidentSnapshot) -> List[FieldChange]:
    """
    Compare two snapshots field by field in COMPARISON_TABLE order.
    A field changed when its stored value (the id, for reference fields)
    differs; the change shows display names, or the id when a name is missing.
    """
    changes: List[FieldChange] = []
    for key, label, value_attr, name_attr in COMPARISON_TABLE:
        if getattr(before, value_attr) == getattr(after, value_attr):
            continue
        changes.append(
            FieldChange(
                field=key,
                label=label,
                before=_display_value(before, value_attr, name_attr),
                after=_display_value(after, value_attr, name_attr),
            )
        )
    return changes


def diff_request(request: ApprovalRequest) -> List[FieldChange]:
    before = before_snapshot(request)
    if request.operation == "delete":
        return [
            FieldChange(
                field=DELETION_SENTINEL,
                label="Deletion requested",
                before=before.id,
                after=None,
                kind="deletion",
            )
        ]
    after = after_snapshot(request)
    if after is None:
        return []
    return diff_snapshots(before, after)


def _proposed_snapshot(
    db: Session, incident: Incident, before: IncidentSnapshot, proposed_changes: Dict[str, Any]
) -> IncidentSnapshot:
    changes = normalize_changes(proposed_changes)
    merged = {**current_state(incident), **changes}

    draft = before.model_copy(update={**merged, "requester_role": None})
    missing = draft.missing_required_fields()
    if missing:
        raise ValidationError(
            f"Proposed state is missing required fields: {', '.join(missing)}",
            message_key="incident.required_fields",
            details={"missing": missing},
        )

    names = validate_classification(db, merged)
    return draft.model_copy(
        update={
            **names,
            "duration_minutes": compute_duration_minutes(merged["start_at"], merged.get("end_at")),
        }
    )


# -----------------------------
# Submit
# -----------------------------
def submit_request(
    db: Session,
    *,
    operation: str,
    incident: Incident,
    requester: User,
    proposed_changes: Optional[Dict[str, Any]] = None,
    ip: Optional[str] = None,
) -> ApprovalRequest:
    """
    Persist a pending request for `operation` on `incident`.
    The before-snapshot is tagged with the requester's current role.
    """
    if operation not in APPROVAL_OPERATIONS:
        raise ValidationError(f"Unknown operation {operation!r}", message_key="approval.unknown_operation")

    role = role_of(requester)
    before = snapshot_of(incident, requester_role=role.value if role else None)

    after: Optional[IncidentSnapshot] = None
    if operation == "edit":
        after = _proposed_snapshot(db, incident, before, proposed_changes or {})
        if not diff_snapshots(before, after):
            raise ValidationError("Edit proposes no changes", message_key="incident.no_changes")

    obj = ApprovalRequest(
        incident_id=incident.id,
        operation=operation,
        before_snapshot=before.to_json(),
        after_snapshot=after.to_json() if after is not None else None,
        requester_role=before.requester_role,
        environment_id=incident.environment_id,
        requested_by=requester.id,
        requested_at=utcnow(),
        status="pending",
    )
    try:
        crud_requests.add_request(db, obj)
        audit_log(
            db,
            user_id=requester.id,
            action="APPROVAL_REQUESTED",
            entity_type="incident",
            entity_id=incident.id,
            meta={"request_id": obj.id, "operation": operation, "requester_role": obj.requester_role},
            ip=ip,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise store_error(exc) from exc
    commit_or_raise(db)
    db.refresh(obj)

    log.info(
        "approval request %s submitted: %s incident=%s by user=%s (%s)",
        obj.id,
        operation,
        incident.id,
        requester.id,
        obj.requester_role,
    )
    return obj


# -----------------------------
# Listing
# -----------------------------
def _visible_roles(viewer: User) -> List[str]:
    viewer_role = ensure_capability(viewer, Capability.APPROVE_REQUESTS)
    return sorted(r.value for r in visible_requester_roles(viewer_role))


def list_pending(db: Session, filt: ApprovalFilter, viewer: User) -> List[ApprovalRequest]:
    """
    Requests matching `filt`, newest `requested_at` first, restricted to the
    requester roles the viewer may resolve (gestor -> operador only).
    """
    return crud_requests.list_requests(
        db,
        status=filt.status,
        environment_id=filt.environment_id,
        date_from=filt.date_from,
        date_to=filt.date_to,
        requester_roles=_visible_roles(viewer),
    )


def count_pending(db: Session, viewer_role: Role) -> int:
    roles = sorted(r.value for r in visible_requester_roles(viewer_role))
    return crud_requests.count_requests(db, status="pending", requester_roles=roles)


def get_request(db: Session, request_id: int, viewer: User) -> ApprovalRequest:
    obj = crud_requests.get_request(db, request_id)
    if obj is None:
        raise NotFoundError(f"Approval request #{request_id} not found", message_key="approval.not_found")
    if obj.requester_role not in _visible_roles(viewer):
        raise ForbiddenError(
            f"Request #{request_id} is outside the viewer's approval scope",
            message_key="approval.forbidden",
        )
    return obj


# -----------------------------
# Resolution
# -----------------------------
def _load_for_resolution(db: Session, request_id: int, approver: User) -> ApprovalRequest:
    obj = crud_requests.get_request(db, request_id)
    if obj is None:
        raise NotFoundError(f"Approval request #{request_id} not found", message_key="approval.not_found")
    if obj.status != "pending":
        raise InvalidStateError(
            f"Approval request #{request_id} is already {obj.status}",
            message_key="approval.already_processed",
        )
    if not can_resolve(role_of(approver), Role.parse(obj.requester_role)):
        raise ForbiddenError(
            f"Role {approver.role!r} may not resolve requests from {obj.requester_role!r}",
            message_key="approval.forbidden",
        )
    return obj


def _claim(db: Session, request_id: int, **values: Any) -> None:
    if not crud_requests.resolve_if_pending(db, request_id, **values):
        raise InvalidStateError(
            f"Approval request #{request_id} was resolved concurrently",
            message_key="approval.already_processed",
        )


def approve_request(
    db: Session,
    request_id: int,
    approver: User,
    now: Optional[datetime] = None,
    ip: Optional[str] = None,
) -> ApprovalRequest:
    """
    Approve and apply. The status claim, the incident write (or delete) and
    the audit entry commit together; any failure rolls all of them back and
    the request stays pending.
    """
    obj = _load_for_resolution(db, request_id, approver)
    operation, incident_id = obj.operation, obj.incident_id
    after = after_snapshot(obj)
    note: Optional[str] = None

    try:
        _claim(db, request_id, status="approved", resolver_id=approver.id, resolved_at=now or utcnow())

        if get_incident(db, incident_id) is None:
            note = f"Incident #{incident_id} no longer exists; approval recorded without changes."
            crud_requests.set_resolution_note(db, request_id, note)
            log.warning("approval request %s: incident %s vanished before apply", request_id, incident_id)
        elif operation == "edit":
            if after is None:
                raise ValidationError("Edit request has no proposed state", message_key="approval.corrupt")
            update_incident(
                db,
                incident_id,
                {f: getattr(after, f) for f in WRITABLE_FIELDS},
                user_id=approver.id,
                commit=False,
            )
        else:
            delete_incident(db, incident_id, commit=False)

        audit_log(
            db,
            user_id=approver.id,
            action="APPROVAL_APPROVED",
            entity_type="incident",
            entity_id=incident_id,
            meta={"request_id": request_id, "operation": operation, "note": note},
            ip=ip,
        )
        commit_or_raise(db)
    except DomainError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise store_error(exc) from exc

    db.refresh(obj)
    log.info("approval request %s approved by user=%s", request_id, approver.id)
    return obj


def reject_request(
    db: Session,
    request_id: int,
    approver: User,
    reason: Optional[str],
    now: Optional[datetime] = None,
    ip: Optional[str] = None,
) -> ApprovalRequest:
    """Reject with a mandatory, non-blank reason. The incident is not touched."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", message_key="approval.reason_required")

    obj = _load_for_resolution(db, request_id, approver)

    try:
        _claim(
            db,
            request_id,
            status="rejected",
            resolver_id=approver.id,
            resolved_at=now or utcnow(),
            rejection_reason=reason,
        )

        audit_log(
            db,
            user_id=approver.id,
            action="APPROVAL_REJECTED",
            entity_type="incident",
            entity_id=obj.incident_id,
            meta={"request_id": request_id, "operation": obj.operation, "reason": reason},
            ip=ip,
        )
        commit_or_raise(db)
    except DomainError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise store_error(exc) from exc

    db.refresh(obj)
    log.info("approval request %s rejected by user=%s", request_id, approver.id)
    return obj
