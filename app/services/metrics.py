# app/services/metrics.py
"""
Operational metrics over the incidents of a period.

  MTTR         mean duration of resolved incidents, in hours
  MTBF         uptime of the period divided by the number of failures
  availability (period - downtime) / period, as a percentage

Only incidents whose criticality is flagged `is_downtime` count as failures,
unless `downtime_only=False` is passed (MTTR/MTBF only; availability always
uses downtime incidents).
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.clock import day_end_utc, day_start_utc, utcnow
from app.core.errors import ValidationError
from app.crud.incident import query_incidents
from app.models.incident import Incident
from app.schemas.report import OperationalMetrics


def _is_downtime(incident: Incident) -> bool:
    return bool(incident.criticality is not None and incident.criticality.is_downtime)


def _elapsed_minutes(incident: Incident, now: datetime) -> float:
    """Stored duration; an open incident counts until `now`."""
    if incident.duration_minutes is not None:
        return float(incident.duration_minutes)
    if incident.end_at is None:
        return max((now - incident.start_at).total_seconds() / 60.0, 0.0)
    return 0.0


def mttr_hours(incidents: List[Incident], downtime_only: bool = True) -> float:
    resolved = [
        i
        for i in incidents
        if i.end_at is not None
        and i.duration_minutes is not None
        and (not downtime_only or _is_downtime(i))
    ]
    if not resolved:
        return 0.0
    return sum(i.duration_minutes for i in resolved) / 60.0 / len(resolved)


def mtbf_hours(
    incidents: List[Incident], period_hours: float, now: datetime, downtime_only: bool = True
) -> float:
    failures = [i for i in incidents if not downtime_only or _is_downtime(i)]
    if not failures:
        return period_hours
    downtime_hours = sum(_elapsed_minutes(i, now) for i in failures) / 60.0
    return (period_hours - downtime_hours) / len(failures)


def availability_pct(incidents: List[Incident], period_minutes: float, now: datetime) -> float:
    downtime = [i for i in incidents if _is_downtime(i)]
    if not downtime or period_minutes <= 0:
        return 100.0
    lost = sum(_elapsed_minutes(i, now) for i in downtime)
    return max((period_minutes - lost) / period_minutes * 100.0, 0.0)


def compute_metrics(
    db: Session,
    date_from: date,
    date_to: date,
    environment_id: Optional[int] = None,
    downtime_only: bool = True,
    now: Optional[datetime] = None,
) -> OperationalMetrics:
    """
    Metrics for incidents that started within [date_from, date_to] (whole
    days in the business zone), optionally for a single environment.
    """
    if date_from > date_to:
        raise ValidationError(
            "date_from must not be after date_to", message_key="reports.invalid_period"
        )

    now = now or utcnow()
    incidents = query_incidents(
        db,
        environment_id=environment_id,
        date_from=date_from,
        date_to=date_to,
        ordering="start_asc",
        limit=None,
    )

    period_minutes = (day_end_utc(date_to) - day_start_utc(date_from)).total_seconds() / 60.0
    period_hours = period_minutes / 60.0
    downtime = [i for i in incidents if _is_downtime(i)]

    return OperationalMetrics(
        environment_id=environment_id,
        date_from=date_from,
        date_to=date_to,
        period_hours=period_hours,
        incident_count=len(incidents),
        downtime_count=len(downtime),
        downtime_minutes=sum(_elapsed_minutes(i, now) for i in downtime),
        mttr_hours=mttr_hours(incidents, downtime_only=downtime_only),
        mtbf_hours=mtbf_hours(incidents, period_hours, now, downtime_only=downtime_only),
        availability_pct=availability_pct(incidents, period_minutes, now),
    )
