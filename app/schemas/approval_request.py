# app/schemas/approval_request.py
from __future__ import annotations
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, constr

from app.schemas.incident import IncidentOut
from app.schemas.snapshot import FieldChange, IncidentSnapshot

ApprovalOperation = Literal["edit", "delete"]
ApprovalStatus = Literal["pending", "approved", "rejected"]
MutationOutcome = Literal["applied", "deleted", "pending_approval"]


class ApprovalFilter(BaseModel):
    """
    Listing filter. `status=None` lists every status; the date range applies to
    `requested_at` and is inclusive on both bounds.
    """
    status: Optional[ApprovalStatus] = "pending"
    environment_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class RejectBody(BaseModel):
    """Request body used to reject a pending request."""
    reason: constr(max_length=2000) = Field(
        ..., description="Why the change was rejected (required, not blank)."
    )


class ApprovalRequestOut(BaseModel):
    id: int
    incident_id: int
    operation: ApprovalOperation
    status: ApprovalStatus
    requester_role: str
    requested_by: int
    requested_at: datetime
    resolver_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    resolution_note: Optional[str] = None
    before_snapshot: IncidentSnapshot
    after_snapshot: Optional[IncidentSnapshot] = None

    class Config:
        from_attributes = True


class ApprovalRequestDetailOut(ApprovalRequestOut):
    changes: List[FieldChange] = Field(default_factory=list)


class PendingCountOut(BaseModel):
    role: str
    count: int
    refreshed_at: Optional[datetime] = None


class MutationResult(BaseModel):
    """
    Outcome of an edit/delete attempt, for the presentation layer.
    `message_key` identifies the message to render; it is never the text itself.
    """
    ok: bool = True
    outcome: MutationOutcome
    message_key: str
    incident: Optional[IncidentOut] = None
    request: Optional[ApprovalRequestOut] = None


class ResolutionResult(BaseModel):
    ok: bool = True
    message_key: str
    request: ApprovalRequestOut
