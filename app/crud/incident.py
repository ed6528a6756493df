# app/crud/incident.py
"""
Incident store adapter: CRUD + filtered queries over `incidents`, with the
classification checks every write must pass.

Write functions take `commit=False` when the caller owns the transaction
(the approval manager applies approved changes and finalizes the request in
one unit of work).
"""
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.clock import day_end_utc, day_start_utc, to_naive_utc, utcnow
from app.core.errors import NotFoundError, ValidationError
from app.crud.base import commit_or_raise
from app.models.criticality import Criticality
from app.models.environment import Environment
from app.models.incident import Incident
from app.models.incident_type import IncidentType
from app.models.segment import Segment
from app.schemas.incident import IncidentCreate, IncidentOut
from app.schemas.snapshot import REQUIRED_FIELDS, IncidentSnapshot

# Columns a caller may write; everything else is derived or provenance
WRITABLE_FIELDS = (
    "start_at",
    "end_at",
    "type_id",
    "environment_id",
    "segment_id",
    "criticality_id",
    "description",
    "actions_taken",
)


# -----------------------------
# Derivations
# -----------------------------
def compute_duration_minutes(start_at: Optional[datetime], end_at: Optional[datetime]) -> Optional[int]:
    """Whole minutes between start and end, half-up rounding; None while open."""
    if start_at is None or end_at is None:
        return None
    minutes = (to_naive_utc(end_at) - to_naive_utc(start_at)).total_seconds() / 60.0
    return int(math.floor(minutes + 0.5))


def display_names(incident: Incident) -> Dict[str, Optional[str]]:
    return {
        "type_name": incident.incident_type.name if incident.incident_type else None,
        "environment_name": incident.environment.name if incident.environment else None,
        "segment_name": incident.segment.name if incident.segment else None,
        "criticality_name": incident.criticality.name if incident.criticality else None,
    }


def to_out(incident: Incident) -> IncidentOut:
    out = IncidentOut.model_validate(incident)
    return out.model_copy(
        update={
            **display_names(incident),
            "criticality_color": incident.criticality.color if incident.criticality else None,
        }
    )


def snapshot_of(incident: Incident, requester_role: Optional[str] = None) -> IncidentSnapshot:
    """Full-state copy of the incident as currently persisted."""
    return IncidentSnapshot(
        id=incident.id,
        start_at=incident.start_at,
        end_at=incident.end_at,
        duration_minutes=incident.duration_minutes,
        type_id=incident.type_id,
        environment_id=incident.environment_id,
        segment_id=incident.segment_id,
        criticality_id=incident.criticality_id,
        description=incident.description,
        actions_taken=incident.actions_taken,
        created_at=incident.created_at,
        created_by=incident.created_by,
        updated_by=incident.updated_by,
        requester_role=requester_role,
        **display_names(incident),
    )


# -----------------------------
# Validation
# -----------------------------
def validate_classification(db: Session, data: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """
    Check a full incident state before it is written.
    Returns the display names of the referenced rows.
    Raises ValidationError on missing fields, unknown references, a segment
    outside the chosen environment, or end before start.
    """
    missing = [
        f for f in REQUIRED_FIELDS
        if data.get(f) is None or (isinstance(data.get(f), str) and not data[f].strip())
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            message_key="incident.required_fields",
            details={"missing": missing},
        )

    incident_type = db.get(IncidentType, data["type_id"])
    environment = db.get(Environment, data["environment_id"])
    segment = db.get(Segment, data["segment_id"])
    criticality = db.get(Criticality, data["criticality_id"])

    unknown = [
        name
        for name, row in (
            ("type_id", incident_type),
            ("environment_id", environment),
            ("segment_id", segment),
            ("criticality_id", criticality),
        )
        if row is None
    ]
    if unknown:
        raise ValidationError(
            f"Unknown references: {', '.join(unknown)}",
            message_key="incident.unknown_reference",
            details={"unknown": unknown},
        )

    if segment.environment_id != environment.id:
        raise ValidationError(
            f"Segment #{segment.id} does not belong to environment #{environment.id}",
            message_key="incident.segment_environment_mismatch",
        )

    start_at = to_naive_utc(data["start_at"])
    end_at = to_naive_utc(data.get("end_at"))
    if end_at is not None and end_at < start_at:
        raise ValidationError(
            "end_at must not be before start_at",
            message_key="incident.end_before_start",
        )

    return {
        "type_name": incident_type.name,
        "environment_name": environment.name,
        "segment_name": segment.name,
        "criticality_name": criticality.name,
    }


def normalize_changes(data: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in data.items() if k in WRITABLE_FIELDS}
    for k in ("start_at", "end_at"):
        if k in out:
            out[k] = to_naive_utc(out[k])
    for k in ("description", "actions_taken"):
        if isinstance(out.get(k), str):
            out[k] = out[k].strip()
    if out.get("actions_taken") == "":
        out["actions_taken"] = None
    return out


def current_state(incident: Incident) -> Dict[str, Any]:
    return {f: getattr(incident, f) for f in WRITABLE_FIELDS}


# -----------------------------
# CRUD
# -----------------------------
def get_incident(db: Session, incident_id: int) -> Optional[Incident]:
    return db.query(Incident).filter(Incident.id == incident_id).first()


def require_incident(db: Session, incident_id: int) -> Incident:
    obj = get_incident(db, incident_id)
    if obj is None:
        raise NotFoundError(f"Incident #{incident_id} not found", message_key="incident.not_found")
    return obj


def create_incident(db: Session, payload: IncidentCreate, user_id: int, commit: bool = True) -> Incident:
    data = normalize_changes(payload.model_dump())
    validate_classification(db, data)

    obj = Incident(
        **data,
        duration_minutes=compute_duration_minutes(data["start_at"], data.get("end_at")),
        created_at=utcnow(),
        created_by=user_id,
    )
    db.add(obj)
    if commit:
        commit_or_raise(db)
        db.refresh(obj)
    else:
        db.flush()
    return obj


def update_incident(
    db: Session,
    incident_id: int,
    partial: Dict[str, Any],
    user_id: Optional[int] = None,
    commit: bool = True,
) -> Incident:
    """
    Apply `partial` (only keys present are written) on top of the current state.
    `duration_minutes` is recomputed from the resulting start/end.
    """
    obj = require_incident(db, incident_id)
    changes = normalize_changes(partial)

    merged = {**current_state(obj), **changes}
    validate_classification(db, merged)

    for k, v in changes.items():
        setattr(obj, k, v)
    obj.duration_minutes = compute_duration_minutes(obj.start_at, obj.end_at)
    obj.updated_at = utcnow()
    obj.updated_by = user_id

    db.add(obj)
    if commit:
        commit_or_raise(db)
        db.refresh(obj)
    else:
        db.flush()
    return obj


def delete_incident(db: Session, incident_id: int, commit: bool = True) -> None:
    obj = require_incident(db, incident_id)
    db.delete(obj)
    if commit:
        commit_or_raise(db)
    else:
        db.flush()


def query_incidents(
    db: Session,
    environment_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    ordering: str = "start_desc",
    skip: int = 0,
    limit: Optional[int] = 100,
) -> List[Incident]:
    """
    Filter by environment and by an inclusive [date_from, date_to] range on
    start_at; date_to covers the whole calendar day. `limit=None` returns
    every match.
    """
    q = db.query(Incident)

    if environment_id is not None:
        q = q.filter(Incident.environment_id == environment_id)
    if date_from is not None:
        q = q.filter(Incident.start_at >= day_start_utc(date_from))
    if date_to is not None:
        q = q.filter(Incident.start_at <= day_end_utc(date_to))

    allowed_orderings = {
        "start_desc": Incident.start_at.desc(),
        "start_asc": Incident.start_at.asc(),
        "created_desc": Incident.created_at.desc(),
    }
    order_col = allowed_orderings.get(ordering, Incident.start_at.desc())

    # Stable ordering: tie-breaker by id
    q = q.order_by(order_col, Incident.id.desc()).offset(skip)
    if limit is not None:
        q = q.limit(limit)
    return q.all()
