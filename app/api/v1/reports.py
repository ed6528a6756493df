# app/api/v1/reports.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_db, get_current_user
from app.core.roles import Capability, ensure_capability
from app.models.user import User
from app.schemas.report import OperationalMetrics
from app.services.metrics import compute_metrics

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/metrics", response_model=OperationalMetrics)
def operational_metrics(
    date_from: date = Query(..., description="Start date, inclusive"),
    date_to: date = Query(..., description="End date, inclusive (whole day)"),
    environment_id: Optional[int] = Query(None),
    downtime_only: bool = Query(True, description="MTTR/MTBF over downtime incidents only"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """MTTR, MTBF and availability for a period (admin, gestor)."""
    ensure_capability(current_user, Capability.VIEW_REPORTS)
    return compute_metrics(
        db,
        date_from,
        date_to,
        environment_id=environment_id,
        downtime_only=downtime_only,
    )
