# app/schemas/reference.py
from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, Field, conint, constr


class NamedRefCreate(BaseModel):
    """Create payload shared by incident types and environments."""
    name: constr(strip_whitespace=True, min_length=1, max_length=255)
    description: Optional[str] = None


class NamedRefUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=255)] = None
    description: Optional[str] = None


class NamedRefOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class SegmentCreate(NamedRefCreate):
    environment_id: conint(ge=1) = Field(..., description="Owning environment")


class SegmentUpdate(NamedRefUpdate):
    environment_id: Optional[conint(ge=1)] = None


class SegmentOut(NamedRefOut):
    environment_id: int


class CriticalityCreate(NamedRefCreate):
    color: constr(strip_whitespace=True, min_length=1, max_length=20) = "#6b7280"
    weight: int = Field(default=0, description="Ordering weight (lower = milder)")
    is_downtime: bool = False


class CriticalityUpdate(NamedRefUpdate):
    color: Optional[constr(strip_whitespace=True, min_length=1, max_length=20)] = None
    weight: Optional[int] = None
    is_downtime: Optional[bool] = None


class CriticalityOut(NamedRefOut):
    color: str
    weight: int
    is_downtime: bool
