# app/models/environment.py
from sqlalchemy import Column, Integer, String, Text, DateTime, func

from app.db.base import Base


class Environment(Base):
    """A monitored environment (e.g. a datacenter or cloud account)."""

    __tablename__ = "environments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
