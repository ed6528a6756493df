# app/models/user.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    text,
)
from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)

    # Basic profile
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # RBAC: admin | gestor | operador | cliente
    role = Column(String(50), nullable=False, default="operador", index=True)
    is_active = Column(Boolean, nullable=False, server_default=text("1"))

    last_access_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"
