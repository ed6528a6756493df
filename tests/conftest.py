"""
Pytest configuration and fixtures.
"""
import os

# Must be set before any app import (engine, business timezone and startup read them)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["APP_TIMEZONE"] = "UTC"
os.environ["ENABLE_CREATE_ALL"] = "0"
os.environ["ENABLE_SCHEDULER"] = "0"

from datetime import timedelta
from types import SimpleNamespace
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import get_db
from app.core.clock import utcnow
from app.core.security import create_access_token
from app.crud.incident import create_incident
from app.main import app
from app.models import Base
from app.models.criticality import Criticality
from app.models.environment import Environment
from app.models.incident import Incident
from app.models.incident_type import IncidentType
from app.models.segment import Segment
from app.models.user import User
from app.schemas.incident import IncidentCreate


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite per test, FK enforcement on."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _fk_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def refs(db: Session) -> SimpleNamespace:
    """Reference data: two environments with their own segments, three criticalities."""
    network = IncidentType(name="Network")
    power = IncidentType(name="Power")
    dc = Environment(name="Datacenter A")
    cloud = Environment(name="Cloud")
    db.add_all([network, power, dc, cloud])
    db.flush()

    core = Segment(name="Core", environment_id=dc.id)
    storage = Segment(name="Storage", environment_id=dc.id)
    compute = Segment(name="Compute", environment_id=cloud.id)
    low = Criticality(name="Low", color="#16a34a", weight=1)
    medium = Criticality(name="Medium", color="#f59e0b", weight=2)
    high = Criticality(name="High", color="#dc2626", weight=3, is_downtime=True)
    db.add_all([core, storage, compute, low, medium, high])
    db.commit()

    return SimpleNamespace(
        network=network,
        power=power,
        dc=dc,
        cloud=cloud,
        core=core,
        storage=storage,
        compute=compute,
        low=low,
        medium=medium,
        high=high,
    )


@pytest.fixture
def users(db: Session) -> SimpleNamespace:
    def mk(name: str, role: str, active: bool = True) -> User:
        u = User(name=name, email=f"{name}@example.com", role=role, is_active=active)
        db.add(u)
        return u

    ns = SimpleNamespace(
        admin=mk("admin", "admin"),
        gestor=mk("gestor", "gestor"),
        gestor2=mk("gestor2", "gestor"),
        operador=mk("operador", "operador"),
        cliente=mk("cliente", "cliente"),
        disabled=mk("disabled", "operador", active=False),
    )
    db.commit()
    return ns


@pytest.fixture
def make_incident(db: Session, refs, users):
    """Factory: persist an incident (Datacenter A / Core / Low by default)."""

    def _make(created_by=None, created_at=None, **overrides) -> Incident:
        data = dict(
            start_at=utcnow().replace(microsecond=0) - timedelta(hours=2),
            end_at=None,
            type_id=refs.network.id,
            environment_id=refs.dc.id,
            segment_id=refs.core.id,
            criticality_id=refs.low.id,
            description="Link down on core switch",
            actions_taken=None,
        )
        data.update(overrides)
        owner = created_by or users.operador
        obj = create_incident(db, IncidentCreate(**data), user_id=owner.id)
        if created_at is not None:
            obj.created_at = created_at
            db.commit()
            db.refresh(obj)
        return obj

    return _make


@pytest.fixture(scope="function")
def client(session_factory) -> Generator[TestClient, None, None]:
    """
    Test client with the DB dependency overridden.
    Authentication runs for real against bearer tokens from `auth_headers`.
    """

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
