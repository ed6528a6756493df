# app/api/v1/reference.py
from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.auth import get_db, get_current_user
from app.core.roles import Capability, ensure_capability
from app.crud import reference as crud
from app.models.criticality import Criticality
from app.models.environment import Environment
from app.models.incident_type import IncidentType
from app.models.segment import Segment
from app.models.user import User
from app.schemas.reference import (
    CriticalityCreate,
    CriticalityOut,
    CriticalityUpdate,
    NamedRefCreate,
    NamedRefOut,
    NamedRefUpdate,
    SegmentCreate,
    SegmentOut,
    SegmentUpdate,
)

router = APIRouter(prefix="/reference", tags=["reference"])


# ---------------------------
# READ (any authenticated user)
# ---------------------------
@router.get("/types", response_model=List[NamedRefOut])
def list_types(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return crud.list_types(db)


@router.get("/environments", response_model=List[NamedRefOut])
def list_environments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return crud.list_environments(db)


@router.get("/segments", response_model=List[SegmentOut])
def list_segments(
    environment_id: Optional[int] = Query(None, description="Only segments of this environment"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return crud.list_segments(db, environment_id=environment_id)


@router.get("/criticalities", response_model=List[CriticalityOut])
def list_criticalities(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Ordered by weight, mildest first."""
    return crud.list_criticalities(db)


# ---------------------------
# WRITE (manage_system only)
# ---------------------------
@router.post("/types", response_model=NamedRefOut, status_code=status.HTTP_201_CREATED)
def create_type(
    payload: NamedRefCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.create_ref(db, IncidentType, payload.model_dump())


@router.put("/types/{ref_id}", response_model=NamedRefOut)
def update_type(
    ref_id: int,
    payload: NamedRefUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.update_ref(db, IncidentType, ref_id, payload.model_dump(exclude_unset=True))


@router.post("/environments", response_model=NamedRefOut, status_code=status.HTTP_201_CREATED)
def create_environment(
    payload: NamedRefCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.create_ref(db, Environment, payload.model_dump())


@router.put("/environments/{ref_id}", response_model=NamedRefOut)
def update_environment(
    ref_id: int,
    payload: NamedRefUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.update_ref(db, Environment, ref_id, payload.model_dump(exclude_unset=True))


@router.post("/segments", response_model=SegmentOut, status_code=status.HTTP_201_CREATED)
def create_segment(
    payload: SegmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.create_ref(db, Segment, payload.model_dump())


@router.put("/segments/{ref_id}", response_model=SegmentOut)
def update_segment(
    ref_id: int,
    payload: SegmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.update_ref(db, Segment, ref_id, payload.model_dump(exclude_unset=True))


@router.post("/criticalities", response_model=CriticalityOut, status_code=status.HTTP_201_CREATED)
def create_criticality(
    payload: CriticalityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.create_ref(db, Criticality, payload.model_dump())


@router.put("/criticalities/{ref_id}", response_model=CriticalityOut)
def update_criticality(
    ref_id: int,
    payload: CriticalityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_capability(current_user, Capability.MANAGE_SYSTEM)
    return crud.update_ref(db, Criticality, ref_id, payload.model_dump(exclude_unset=True))
