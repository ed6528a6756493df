# app/api/v1/audit_logs.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.core.auth import get_db, get_current_user
from app.core.errors import ValidationError
from app.core.roles import Capability, ensure_capability
from app.crud.audit_log import list_audit_logs
from app.models.user import User
from app.schemas.audit_log import AuditLogOut, AuditLogPage

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs", response_model=AuditLogPage)
def audit_logs(
    response: Response,
    user_id: Optional[int] = Query(None, description="User who performed the action"),
    action: Optional[str] = Query(None, description="Exact action, e.g. APPROVAL_APPROVED"),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, description="Start date, inclusive"),
    date_to: Optional[date] = Query(None, description="End date, inclusive (whole day)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Admin view of the audit trail, newest first.
    X-Total-Count carries the number of matching rows.
    """
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to", message_key="audit.invalid_period")

    rows, total = list_audit_logs(
        db,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    response.headers["X-Total-Count"] = str(total)
    return AuditLogPage(
        items=[AuditLogOut.model_validate(r) for r in rows],
        total=total,
        skip=skip,
        limit=limit,
    )
