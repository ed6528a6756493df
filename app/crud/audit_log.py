from __future__ import annotations
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.clock import day_end_utc, day_start_utc
from app.models.audit_log import AuditLog


def list_audit_logs(
    db: Session,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = 0,
    limit: int = 50,
) -> Tuple[List[AuditLog], int]:
    """Newest first. Returns (page, total matching rows)."""
    q = db.query(AuditLog)

    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditLog.entity_id == entity_id)
    if date_from is not None:
        q = q.filter(AuditLog.created_at >= day_start_utc(date_from))
    if date_to is not None:
        q = q.filter(AuditLog.created_at <= day_end_utc(date_to))

    total = q.count()
    rows = (
        q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return rows, total
