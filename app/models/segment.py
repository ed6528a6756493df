# app/models/segment.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.db.base import Base


class Segment(Base):
    """A segment always belongs to exactly one environment."""

    __tablename__ = "segments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    environment_id = Column(
        Integer, ForeignKey("environments.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    environment = relationship("Environment", backref="segments")

    __table_args__ = (
        UniqueConstraint("environment_id", "name", name="uq_segments_environment_name"),
    )
