# app/db/session.py
import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

# SQLite DB by default (relative file ./opscenter.db)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./opscenter.db")

_connect_args = (
    {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)

# Create engine
engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args,  # required for SQLite + threads (scheduler)
    pool_pre_ping=True,  # safer reconnects
    future=True,
)


# Enforce foreign keys in SQLite
@event.listens_for(engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if "sqlite" not in type(dbapi_connection).__module__:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    future=True,
)
