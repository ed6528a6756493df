# app/db/base.py
from sqlalchemy.orm import declarative_base

# Shared declarative Base so every model lands in the same metadata
Base = declarative_base()
