# app/services/incident_workflow.py
"""
Entry points the API calls to create, edit and delete incidents.

Edits and deletes go through the mutation policy first; the outcome is either
applied immediately, queued as an approval request, or refused.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DomainError, ForbiddenError, StalePeriodError
from app.core.roles import Capability, ensure_capability, role_of
from app.crud import incident as crud_incident
from app.crud.base import commit_or_raise, store_error
from app.models.user import User
from app.schemas.approval_request import ApprovalRequestOut, MutationResult
from app.schemas.incident import IncidentCreate
from app.services import approvals
from app.services.audit import audit_log
from app.services.mutation_policy import Decision, DecisionKind, decide

log = logging.getLogger("app.incidents")


def create_incident(
    db: Session, payload: IncidentCreate, actor: User, ip: Optional[str] = None
) -> MutationResult:
    ensure_capability(actor, Capability.CREATE_INCIDENTS)

    try:
        obj = crud_incident.create_incident(db, payload, user_id=actor.id, commit=False)
        audit_log(
            db,
            user_id=actor.id,
            action="INCIDENT_CREATED",
            entity_type="incident",
            entity_id=obj.id,
            meta={"environment_id": obj.environment_id, "criticality_id": obj.criticality_id},
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
    return MutationResult(
        outcome="applied",
        message_key="incident.created",
        incident=crud_incident.to_out(obj),
    )


def _decide_or_raise(actor: User, created_at: datetime, operation: str, now: Optional[datetime]) -> Decision:
    decision = decide(role_of(actor), created_at, operation, now=now)

    if decision.kind is DecisionKind.STALE_PERIOD:
        raise StalePeriodError(
            "Incidents can only be changed within the month they were created",
            message_key="incident.period_closed",
        )
    if decision.kind is DecisionKind.FORBIDDEN:
        raise ForbiddenError(
            f"Role {actor.role!r} may not {operation} incidents",
            message_key="auth.forbidden",
        )
    return decision


def request_edit(
    db: Session,
    incident_id: int,
    changes: Dict[str, Any],
    actor: User,
    now: Optional[datetime] = None,
    ip: Optional[str] = None,
) -> MutationResult:
    """
    Edit an incident: applied directly for admins, otherwise queued for
    approval. StalePeriodError / ForbiddenError leave everything untouched.
    """
    incident = crud_incident.require_incident(db, incident_id)
    decision = _decide_or_raise(actor, incident.created_at, "edit", now)

    if decision.requires_approval:
        req = approvals.submit_request(
            db,
            operation="edit",
            incident=incident,
            requester=actor,
            proposed_changes=changes,
            ip=ip,
        )
        return MutationResult(
            outcome="pending_approval",
            message_key="approval.submitted",
            request=ApprovalRequestOut.model_validate(req),
        )

    try:
        obj = crud_incident.update_incident(db, incident_id, changes, user_id=actor.id, commit=False)
        audit_log(
            db,
            user_id=actor.id,
            action="INCIDENT_UPDATED",
            entity_type="incident",
            entity_id=incident_id,
            meta={"fields": sorted(crud_incident.normalize_changes(changes))},
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
    log.info("incident %s updated directly by user=%s", incident_id, actor.id)
    return MutationResult(
        outcome="applied",
        message_key="incident.updated",
        incident=crud_incident.to_out(obj),
    )


def request_delete(
    db: Session,
    incident_id: int,
    actor: User,
    now: Optional[datetime] = None,
    ip: Optional[str] = None,
) -> MutationResult:
    incident = crud_incident.require_incident(db, incident_id)
    decision = _decide_or_raise(actor, incident.created_at, "delete", now)

    if decision.requires_approval:
        req = approvals.submit_request(db, operation="delete", incident=incident, requester=actor, ip=ip)
        return MutationResult(
            outcome="pending_approval",
            message_key="approval.submitted",
            request=ApprovalRequestOut.model_validate(req),
        )

    try:
        crud_incident.delete_incident(db, incident_id, commit=False)
        audit_log(
            db,
            user_id=actor.id,
            action="INCIDENT_DELETED",
            entity_type="incident",
            entity_id=incident_id,
            ip=ip,
        )
        commit_or_raise(db)
    except DomainError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise store_error(exc) from exc

    log.info("incident %s deleted directly by user=%s", incident_id, actor.id)
    return MutationResult(outcome="deleted", message_key="incident.deleted")
