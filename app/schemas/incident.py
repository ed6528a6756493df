# app/schemas/incident.py
from __future__ import annotations
from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, Field, conint, constr

IncidentOrdering = Literal["start_desc", "start_asc", "created_desc"]


class IncidentBase(BaseModel):
    """
    Base schema for incidents.
    """
    start_at: datetime = Field(..., description="When the incident started")
    end_at: Optional[datetime] = Field(
        default=None, description="When the incident was resolved (null while open)"
    )

    type_id: conint(ge=1) = Field(..., description="Incident type ID")
    environment_id: conint(ge=1) = Field(..., description="Environment ID")
    segment_id: conint(ge=1) = Field(
        ..., description="Segment ID (must belong to the chosen environment)"
    )
    criticality_id: conint(ge=1) = Field(..., description="Criticality ID")

    description: constr(strip_whitespace=True, min_length=1) = Field(
        ..., description="What happened"
    )
    actions_taken: Optional[constr(strip_whitespace=True)] = Field(
        default=None, description="Mitigation / resolution steps"
    )


class IncidentCreate(IncidentBase):
    """
    Create payload. 'created_by' is taken from the authenticated user on the server side.
    """
    pass


class IncidentUpdate(BaseModel):
    """
    Partial update payload. Only fields explicitly sent are applied;
    sending `end_at: null` reopens the incident.
    """
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    type_id: Optional[conint(ge=1)] = None
    environment_id: Optional[conint(ge=1)] = None
    segment_id: Optional[conint(ge=1)] = None
    criticality_id: Optional[conint(ge=1)] = None
    description: Optional[constr(strip_whitespace=True)] = None
    actions_taken: Optional[constr(strip_whitespace=True)] = None


class IncidentOut(BaseModel):
    """
    Read model returned by the API (includes denormalized display names).
    """
    id: int
    start_at: datetime
    end_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    type_id: int
    type_name: Optional[str] = None
    environment_id: int
    environment_name: Optional[str] = None
    segment_id: int
    segment_name: Optional[str] = None
    criticality_id: int
    criticality_name: Optional[str] = None
    criticality_color: Optional[str] = None

    description: str
    actions_taken: Optional[str] = None

    created_at: datetime
    created_by: int
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None

    class Config:
        from_attributes = True
