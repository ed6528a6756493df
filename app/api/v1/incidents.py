# app/api/v1/incidents.py
from __future__ import annotations
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.core.auth import get_db, get_current_user
from app.core.roles import Capability, ensure_capability
from app.crud import incident as crud_incident
from app.models.user import User
from app.schemas.approval_request import MutationResult
from app.schemas.incident import (
    IncidentCreate,
    IncidentOrdering,
    IncidentOut,
    IncidentUpdate,
)
from app.services import incident_workflow
from app.services.audit import ip_from_request

router = APIRouter(prefix="/incidents", tags=["incidents"])


def _status_for(result: MutationResult, response: Response) -> MutationResult:
    # Queued for approval: accepted, not yet applied
    if result.outcome == "pending_approval":
        response.status_code = status.HTTP_202_ACCEPTED
    return result


# ---------------------------
# CREATE
# ---------------------------
@router.post("", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
def create_incident(
    payload: IncidentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a new incident (admin, gestor, operador)."""
    return incident_workflow.create_incident(db, payload, current_user, ip=ip_from_request(request))


# ---------------------------
# LIST / GET
# ---------------------------
@router.get("", response_model=List[IncidentOut])
def list_incidents(
    environment_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, description="Start date, inclusive"),
    date_to: Optional[date] = Query(None, description="End date, inclusive (whole day)"),
    ordering: IncidentOrdering = Query("start_desc"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.VIEW_INCIDENTS)
    rows = crud_incident.query_incidents(
        db,
        environment_id=environment_id,
        date_from=date_from,
        date_to=date_to,
        ordering=ordering,
        skip=skip,
        limit=limit,
    )
    return [crud_incident.to_out(r) for r in rows]


@router.get("/{incident_id}", response_model=IncidentOut)
def get_incident(
    incident_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.VIEW_INCIDENTS)
    return crud_incident.to_out(crud_incident.require_incident(db, incident_id))


# ---------------------------
# EDIT / DELETE (policy-driven)
# ---------------------------
@router.put("/{incident_id}", response_model=MutationResult)
def update_incident(
    incident_id: int,
    payload: IncidentUpdate,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Edit an incident. Admins apply directly (200); gestor/operador edits are
    queued for approval (202). Incidents from a past month are locked (409).
    """
    result = incident_workflow.request_edit(
        db,
        incident_id,
        payload.model_dump(exclude_unset=True),
        current_user,
        ip=ip_from_request(request),
    )
    return _status_for(result, response)


@router.delete("/{incident_id}", response_model=MutationResult)
def delete_incident(
    incident_id: int,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = incident_workflow.request_delete(
        db, incident_id, current_user, ip=ip_from_request(request)
    )
    return _status_for(result, response)
