# app/services/audit.py
from __future__ import annotations

import logging
from typing import Any, Optional, Dict

from fastapi import Request
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

log = logging.getLogger("app.audit")


# -----------------------------
# Helpers
# -----------------------------
def ip_from_request(request: Optional[Request]) -> Optional[str]:
    """
    Best-effort client IP extraction compatible with proxies.
    Order:
      - X-Forwarded-For (first in the list)
      - X-Real-IP
      - request.client.host
    """
    if request is None:
        return None

    xff = request.headers.get("x-forwarded-for")
    if xff:
        # take the first IP in the chain
        first = xff.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    client = getattr(request, "client", None)
    return getattr(client, "host", None)


# -----------------------------
# Core API
# -----------------------------
def audit_log(
    db: Session,
    *,
    user_id: Optional[int],
    action: str,
    entity_type: Optional[str],
    entity_id: Optional[int],
    meta: Optional[Dict[str, Any]] = None,
    ip: Optional[str] = None,
) -> AuditLog:
    """
    Stages an audit record in the caller's transaction.
    The row is committed (or rolled back) together with the change it describes.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta=meta or {},
        ip_address=ip,
    )
    db.add(entry)
    log.info(
        "audit %s %s#%s by user=%s",
        action,
        entity_type,
        entity_id,
        user_id,
    )
    return entry
