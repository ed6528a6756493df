# app/models/incident_type.py
from sqlalchemy import Column, Integer, String, Text, DateTime, func

from app.db.base import Base


class IncidentType(Base):
    __tablename__ = "incident_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
