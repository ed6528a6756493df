# app/schemas/snapshot.py
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

# Fields an incident cannot exist without (after-snapshots are checked against this)
REQUIRED_FIELDS: Tuple[str, ...] = (
    "start_at",
    "type_id",
    "environment_id",
    "segment_id",
    "criticality_id",
    "description",
)


class IncidentSnapshot(BaseModel):
    """
    Immutable full-state copy of an incident at a point in time.

    Reference fields carry their display name next to the id so the diff
    stays readable after a reference row is renamed or the incident is gone.
    `requester_role` is only set on before-snapshots.
    """

    id: Optional[int] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    type_id: Optional[int] = None
    type_name: Optional[str] = None
    environment_id: Optional[int] = None
    environment_name: Optional[str] = None
    segment_id: Optional[int] = None
    segment_name: Optional[str] = None
    criticality_id: Optional[int] = None
    criticality_name: Optional[str] = None

    description: Optional[str] = None
    actions_taken: Optional[str] = None

    created_at: Optional[datetime] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None

    requester_role: Optional[str] = None

    class Config:
        frozen = True
        extra = "ignore"

    def missing_required_fields(self) -> List[str]:
        missing = []
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    def to_json(self) -> Dict[str, Any]:
        """JSON-safe dict for the snapshot columns."""
        return self.model_dump(mode="json")


class FieldChange(BaseModel):
    field: str = Field(..., description="Compared field key (e.g. 'criticality').")
    label: str = Field(..., description="Human label of the field.")
    before: Optional[Any] = None
    after: Optional[Any] = None
    kind: str = Field(default="change", description="'change' or 'deletion'.")
