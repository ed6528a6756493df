# app/crud/reference.py
from typing import Any, Dict, List, Optional, Type

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.crud.base import commit_or_raise
from app.models.criticality import Criticality
from app.models.environment import Environment
from app.models.incident_type import IncidentType
from app.models.segment import Segment


def list_types(db: Session) -> List[IncidentType]:
    return db.query(IncidentType).order_by(IncidentType.name.asc()).all()


def list_environments(db: Session) -> List[Environment]:
    return db.query(Environment).order_by(Environment.name.asc()).all()


def list_segments(db: Session, environment_id: Optional[int] = None) -> List[Segment]:
    q = db.query(Segment)
    if environment_id is not None:
        q = q.filter(Segment.environment_id == environment_id)
    return q.order_by(Segment.name.asc()).all()


def list_criticalities(db: Session) -> List[Criticality]:
    return db.query(Criticality).order_by(Criticality.weight.asc(), Criticality.id.asc()).all()


def create_ref(db: Session, model: Type[Any], data: Dict[str, Any]) -> Any:
    if model is Segment:
        _ensure_environment(db, data.get("environment_id"))
    obj = model(**data)
    db.add(obj)
    commit_or_raise(db)
    db.refresh(obj)
    return obj


def update_ref(db: Session, model: Type[Any], ref_id: int, data: Dict[str, Any]) -> Any:
    obj = db.get(model, ref_id)
    if obj is None:
        raise NotFoundError(f"{model.__tablename__} #{ref_id} not found", message_key="reference.not_found")
    if model is Segment and "environment_id" in data:
        _ensure_environment(db, data["environment_id"])
    for k, v in data.items():
        setattr(obj, k, v)
    db.add(obj)
    commit_or_raise(db)
    db.refresh(obj)
    return obj


def _ensure_environment(db: Session, environment_id: Optional[int]) -> None:
    if environment_id is None or db.get(Environment, environment_id) is None:
        raise ValidationError(
            f"Environment #{environment_id} does not exist",
            message_key="reference.environment_missing",
        )
