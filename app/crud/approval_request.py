# app/crud/approval_request.py
from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.clock import day_end_utc, day_start_utc
from app.models.approval_request import ApprovalRequest


def get_request(db: Session, request_id: int) -> Optional[ApprovalRequest]:
    return db.query(ApprovalRequest).filter(ApprovalRequest.id == request_id).first()


def add_request(db: Session, obj: ApprovalRequest) -> ApprovalRequest:
    """Stage a new request in the caller's transaction."""
    db.add(obj)
    db.flush()
    return obj


def _filtered(
    db: Session,
    *,
    status: Optional[str] = None,
    environment_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    requester_roles: Optional[Iterable[str]] = None,
):
    q = db.query(ApprovalRequest)
    if status:
        q = q.filter(ApprovalRequest.status == status)
    if environment_id is not None:
        q = q.filter(ApprovalRequest.environment_id == environment_id)
    if date_from is not None:
        q = q.filter(ApprovalRequest.requested_at >= day_start_utc(date_from))
    if date_to is not None:
        q = q.filter(ApprovalRequest.requested_at <= day_end_utc(date_to))
    if requester_roles is not None:
        q = q.filter(ApprovalRequest.requester_role.in_(list(requester_roles)))
    return q


def list_requests(
    db: Session,
    *,
    status: Optional[str] = None,
    environment_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    requester_roles: Optional[Iterable[str]] = None,
    skip: int = 0,
    limit: int = 200,
) -> List[ApprovalRequest]:
    q = _filtered(
        db,
        status=status,
        environment_id=environment_id,
        date_from=date_from,
        date_to=date_to,
        requester_roles=requester_roles,
    )
    # Newest first; tie-breaker by id
    return (
        q.order_by(ApprovalRequest.requested_at.desc(), ApprovalRequest.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def count_requests(
    db: Session,
    *,
    status: Optional[str] = "pending",
    requester_roles: Optional[Iterable[str]] = None,
) -> int:
    q = _filtered(db, status=status, requester_roles=requester_roles)
    return int(q.with_entities(func.count(ApprovalRequest.id)).scalar() or 0)


def resolve_if_pending(
    db: Session,
    request_id: int,
    *,
    status: str,
    resolver_id: int,
    resolved_at: datetime,
    rejection_reason: Optional[str] = None,
) -> bool:
    """
    Check-and-set on `status`: a single conditional UPDATE that only matches
    while the row is still pending. Returns False if another resolver got
    there first (or the id is unknown). Does not commit.
    """
    result = db.execute(
        update(ApprovalRequest)
        .where(ApprovalRequest.id == request_id, ApprovalRequest.status == "pending")
        .values(
            status=status,
            resolver_id=resolver_id,
            resolved_at=resolved_at,
            rejection_reason=rejection_reason,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def set_resolution_note(db: Session, request_id: int, note: str) -> None:
    db.execute(
        update(ApprovalRequest)
        .where(ApprovalRequest.id == request_id)
        .values(resolution_note=note)
        .execution_options(synchronize_session=False)
    )
