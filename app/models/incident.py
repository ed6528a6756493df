# app/models/incident.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from app.db.base import Base


class Incident(Base):
    """
    Incident recorded against a monitored environment.

    NOTE:
    - `duration_minutes` is derived from start_at/end_at by the store adapter
      (app.crud.incident); it is never written from client input.
    - All timestamps are naive UTC.
    """
    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # When it happened
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=True)  # set only once resolved
    duration_minutes = Column(Integer, nullable=True)

    # Classification
    type_id = Column(Integer, ForeignKey("incident_types.id"), nullable=False, index=True)
    environment_id = Column(Integer, ForeignKey("environments.id"), nullable=False, index=True)
    segment_id = Column(Integer, ForeignKey("segments.id"), nullable=False, index=True)
    criticality_id = Column(Integer, ForeignKey("criticalities.id"), nullable=False, index=True)

    # Content
    description = Column(Text, nullable=False)
    actions_taken = Column(Text, nullable=True)

    # Provenance
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(Integer, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)
    updated_by = Column(Integer, nullable=True)

    # Lookups for display names
    incident_type = relationship("IncidentType", lazy="joined")
    environment = relationship("Environment", lazy="joined")
    segment = relationship("Segment", lazy="joined")
    criticality = relationship("Criticality", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<Incident id={self.id} env={self.environment_id} segment={self.segment_id} "
            f"criticality={self.criticality_id} start_at={self.start_at!r} end_at={self.end_at!r}>"
        )


# Helpful composite indexes (kept outside the class for clarity; created by SQLAlchemy)
Index("ix_incidents_environment_start", Incident.environment_id, Incident.start_at)
