# app/api/v1/approvals.py
from __future__ import annotations
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.auth import get_db, get_current_user
from app.core.clock import utcnow
from app.core.roles import Capability, ensure_capability
from app.models.user import User
from app.schemas.approval_request import (
    ApprovalFilter,
    ApprovalRequestDetailOut,
    ApprovalRequestOut,
    PendingCountOut,
    RejectBody,
    ResolutionResult,
)
from app.services import approvals
from app.services.audit import ip_from_request
from app.services.pending_count import get_notifier

router = APIRouter(prefix="/approvals", tags=["approvals"])


# ---------------------------
# LIST / COUNT
# ---------------------------
@router.get("", response_model=List[ApprovalRequestOut])
def list_approvals(
    status: Literal["pending", "approved", "rejected", "all"] = Query("pending"),
    environment_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, description="Requested on/after, inclusive"),
    date_to: Optional[date] = Query(None, description="Requested on/before, inclusive (whole day)"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Approval requests, newest first. Gestores only see requests raised by
    operadores; admins see everything they can resolve.
    """
    filt = ApprovalFilter(
        status=None if status == "all" else status,
        environment_id=environment_id,
        date_from=date_from,
        date_to=date_to,
    )
    return approvals.list_pending(db, filt, current_user)


@router.get("/pending-count", response_model=PendingCountOut)
def pending_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    role = ensure_capability(current_user, Capability.APPROVE_REQUESTS)
    notifier = get_notifier(role)
    if notifier is not None and notifier.refreshed_at is not None:
        return PendingCountOut(role=role.value, count=notifier.count, refreshed_at=notifier.refreshed_at)
    # No running notifier for this role: count now
    return PendingCountOut(role=role.value, count=approvals.count_pending(db, role), refreshed_at=utcnow())


# ---------------------------
# DETAIL
# ---------------------------
@router.get("/{request_id}", response_model=ApprovalRequestDetailOut)
def get_approval(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    obj = approvals.get_request(db, request_id, current_user)
    out = ApprovalRequestDetailOut.model_validate(obj)
    return out.model_copy(update={"changes": approvals.diff_request(obj)})


# ---------------------------
# RESOLVE
# ---------------------------
@router.post("/{request_id}/approve", response_model=ResolutionResult)
def approve(
    request_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    obj = approvals.approve_request(db, request_id, current_user, ip=ip_from_request(request))
    return ResolutionResult(
        message_key="approval.approved",
        request=ApprovalRequestOut.model_validate(obj),
    )


@router.post("/{request_id}/reject", response_model=ResolutionResult)
def reject(
    request_id: int,
    payload: RejectBody,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    obj = approvals.reject_request(
        db, request_id, current_user, payload.reason, ip=ip_from_request(request)
    )
    return ResolutionResult(
        message_key="approval.rejected",
        request=ApprovalRequestOut.model_validate(obj),
    )
