# app/models/approval_request.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    JSON,
    Index,
    CheckConstraint,
)

from app.db.base import Base

APPROVAL_OPERATIONS = {"edit", "delete"}


class ApprovalRequest(Base):
    """
    A queued proposal to edit or delete an incident.

    NOTE:
    - `incident_id` is intentionally NOT a foreign key: the request outlives the
      incident when a deletion is approved, and the row is kept as audit trail.
    - Snapshots are JSON copies (see app.schemas.snapshot.IncidentSnapshot).
    - status only ever moves pending -> approved | rejected, enforced by a
      conditional UPDATE in app.crud.approval_request.
    """

    __tablename__ = "approval_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)

    incident_id = Column(Integer, nullable=False, index=True)
    operation = Column(String(10), nullable=False)

    before_snapshot = Column(JSON, nullable=False)
    after_snapshot = Column(JSON, nullable=True)  # null for deletions

    # Denormalized from before_snapshot for filtering
    requester_role = Column(String(50), nullable=False, index=True)
    environment_id = Column(Integer, nullable=True, index=True)

    requested_by = Column(Integer, nullable=False, index=True)
    requested_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Resolution
    status = Column(String(20), nullable=False, default="pending", index=True)
    resolver_id = Column(Integer, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    resolution_note = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("operation IN ('edit','delete')", name="ck_approval_requests_operation"),
        CheckConstraint(
            "status IN ('pending','approved','rejected')", name="ck_approval_requests_status"
        ),
        CheckConstraint(
            "(status = 'pending' AND resolver_id IS NULL AND resolved_at IS NULL)"
            " OR (status <> 'pending' AND resolver_id IS NOT NULL AND resolved_at IS NOT NULL)",
            name="ck_approval_requests_resolution",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest id={self.id} incident={self.incident_id} op={self.operation!r} "
            f"status={self.status!r} requester_role={self.requester_role!r}>"
        )


Index(
    "ix_approval_requests_status_requested",
    ApprovalRequest.status,
    ApprovalRequest.requested_at.desc(),
)
