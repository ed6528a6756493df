#!/usr/bin/env python3
"""
Dev seed:
- Reference data (incident types, environments + segments, criticalities).
- One user per role, with a bearer token printed for each.
- Safe to run multiple times (idempotent).
"""
import os
import sys

# enable 'app.' imports
sys.path.append(os.getcwd())

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy.orm import Session

from app.core.security import create_access_token
from app.db.session import SessionLocal, engine
from app.models import Base
from app.models.criticality import Criticality
from app.models.environment import Environment
from app.models.incident_type import IncidentType
from app.models.segment import Segment
from app.models.user import User

INCIDENT_TYPES = ("Network", "Hardware", "Application", "Power")

ENVIRONMENTS = {
    "Datacenter A": ("Core", "Storage", "Edge"),
    "Cloud": ("Compute", "Database"),
}

CRITICALITIES = (
    # name, color, weight, is_downtime
    ("Low", "#16a34a", 1, False),
    ("Medium", "#f59e0b", 2, False),
    ("High", "#dc2626", 3, True),
)

USERS = (
    ("Admin", "admin@example.com", "admin"),
    ("Gestor", "gestor@example.com", "gestor"),
    ("Operador", "operador@example.com", "operador"),
    ("Cliente", "cliente@example.com", "cliente"),
)


def _get_or_create(db: Session, model, defaults=None, **lookup):
    obj = db.query(model).filter_by(**lookup).first()
    if obj:
        return obj
    obj = model(**lookup, **(defaults or {}))
    db.add(obj)
    db.flush()
    return obj


def seed_reference(db: Session) -> None:
    for name in INCIDENT_TYPES:
        _get_or_create(db, IncidentType, name=name)

    for env_name, segments in ENVIRONMENTS.items():
        env = _get_or_create(db, Environment, name=env_name)
        for seg_name in segments:
            _get_or_create(db, Segment, name=seg_name, environment_id=env.id)

    for name, color, weight, is_downtime in CRITICALITIES:
        _get_or_create(
            db,
            Criticality,
            name=name,
            defaults={"color": color, "weight": weight, "is_downtime": is_downtime},
        )
    db.commit()


def seed_users(db: Session):
    out = []
    for name, email, role in USERS:
        user = _get_or_create(db, User, email=email, defaults={"name": name, "role": role})
        if user.role != role or not user.is_active:
            user.role = role
            user.is_active = True
        out.append(user)
    db.commit()
    return out


def main():
    if os.getenv("ENABLE_CREATE_ALL", "1") == "1":
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_reference(db)
        for u in seed_users(db):
            print(f"OK: {u.role:<9} {u.email} (id={u.id}) token={create_access_token(u.id)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
