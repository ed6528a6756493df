# app/models/audit_log.py
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index, func

from app.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(64), nullable=True)
    entity_id = Column(Integer, nullable=True)
    meta = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


Index("ix_audit_logs_entity", AuditLog.entity_type, AuditLog.entity_id)
