# app/services/mutation_policy.py
"""
Mutation policy: may this role edit/delete this incident right now, and if
so, directly or through an approval request?

Rules, evaluated in order:
  1. Incident created in another calendar month (business timezone) -> STALE_PERIOD,
     for every role. Editorial windows close with the month of creation.
  2. admin    -> DIRECT
  3. gestor   -> REQUIRES_APPROVAL by {admin}
  4. operador -> REQUIRES_APPROVAL by {gestor, admin}
  5. anything else -> FORBIDDEN
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import FrozenSet, Optional

from app.core.clock import business_tz, to_business, utcnow
from app.core.roles import Role, eligible_approvers

OPERATIONS = ("edit", "delete")


class DecisionKind(str, Enum):
    DIRECT = "direct"
    REQUIRES_APPROVAL = "requires_approval"
    STALE_PERIOD = "stale_period"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    eligible_approver_roles: FrozenSet[Role] = frozenset()

    @property
    def is_direct(self) -> bool:
        return self.kind is DecisionKind.DIRECT

    @property
    def requires_approval(self) -> bool:
        return self.kind is DecisionKind.REQUIRES_APPROVAL


DIRECT = Decision(DecisionKind.DIRECT)
STALE_PERIOD = Decision(DecisionKind.STALE_PERIOD)
FORBIDDEN = Decision(DecisionKind.FORBIDDEN)


def same_calendar_month(
    created_at: datetime,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> bool:
    """Compare (year, month) of both instants as wall-clock dates in `tz`."""
    zone = tz or business_tz()
    created_local = to_business(created_at, zone)
    now_local = to_business(now or utcnow(), zone)
    return (created_local.year, created_local.month) == (now_local.year, now_local.month)


def decide(
    role: Optional[Role],
    incident_created_at: datetime,
    operation: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Decision:
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown operation {operation!r}")

    if not same_calendar_month(incident_created_at, now=now, tz=tz):
        return STALE_PERIOD

    role = Role.parse(role)
    if role is Role.ADMIN:
        return DIRECT

    approvers = eligible_approvers(role)
    if approvers:
        return Decision(DecisionKind.REQUIRES_APPROVAL, approvers)

    return FORBIDDEN
