# app/core/clock.py
"""Time helpers. Storage is naive UTC; calendar decisions use the business zone."""
from __future__ import annotations

import os
from datetime import date, datetime, time, timezone, tzinfo
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tzlocal import get_localzone


@lru_cache(maxsize=1)
def business_tz() -> tzinfo:
    """
    Resolve the business timezone:
      - APP_TIMEZONE (IANA name, e.g. 'America/Sao_Paulo')
      - otherwise the host's local zone (tzlocal)
    """
    name = os.getenv("APP_TIMEZONE")
    if name:
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError:
            return timezone.utc
    return get_localzone()


def utcnow() -> datetime:
    """Naive UTC 'now', the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_business(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Aware datetime in the business zone; naive input is read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz or business_tz())


def day_start_utc(day: date, tz: Optional[tzinfo] = None) -> datetime:
    """First instant of `day` in the business zone, as naive UTC."""
    local = datetime.combine(day, time.min).replace(tzinfo=tz or business_tz())
    return to_naive_utc(local)


def day_end_utc(day: date, tz: Optional[tzinfo] = None) -> datetime:
    """Last instant of `day` in the business zone, as naive UTC (inclusive bound)."""
    local = datetime.combine(day, time.max).replace(tzinfo=tz or business_tz())
    return to_naive_utc(local)
