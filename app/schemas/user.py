# app/schemas/user.py
from __future__ import annotations
from typing import Dict

from pydantic import BaseModel


class MeOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    capabilities: Dict[str, bool]
