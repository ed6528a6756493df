# app/schemas/report.py
from __future__ import annotations
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class OperationalMetrics(BaseModel):
    """Availability figures for one period, optionally scoped to an environment."""
    environment_id: Optional[int] = None
    date_from: date
    date_to: date

    period_hours: float = Field(..., description="Length of the period in hours.")
    incident_count: int = 0
    downtime_count: int = Field(0, description="Incidents whose criticality counts as downtime.")
    downtime_minutes: float = Field(
        0.0, description="Summed downtime; open incidents count up to the computation time."
    )

    mttr_hours: float = Field(0.0, description="Mean time to repair over resolved incidents.")
    mtbf_hours: float = Field(..., description="Mean time between failures.")
    availability_pct: float = Field(100.0, description="Share of the period without downtime.")
