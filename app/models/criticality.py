# app/models/criticality.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, func, text

from app.db.base import Base


class Criticality(Base):
    """
    Criticality level of an incident.
    `weight` orders the levels (lower = milder); `is_downtime` marks levels
    that count as service unavailability.
    """

    __tablename__ = "criticalities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    color = Column(String(20), nullable=False, default="#6b7280")
    weight = Column(Integer, nullable=False, default=0)
    is_downtime = Column(Boolean, nullable=False, server_default=text("0"))
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
