# app/core/roles.py
"""
Roles, capabilities and the approval escalation graph.

Every role decision in the service goes through this module: the policy
engine, approver eligibility, listing visibility and the API guards.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from app.core.errors import ForbiddenError


class Role(str, Enum):
    ADMIN = "admin"
    GESTOR = "gestor"
    OPERADOR = "operador"
    CLIENTE = "cliente"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Lenient parse of a stored role string; unknown values -> None."""
        if isinstance(value, Role):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


class Capability(str, Enum):
    VIEW_INCIDENTS = "view_incidents"
    CREATE_INCIDENTS = "create_incidents"
    APPROVE_REQUESTS = "approve_requests"
    MANAGE_SYSTEM = "manage_system"
    VIEW_REPORTS = "view_reports"


# -----------------------------
# Capability table
# -----------------------------
CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.GESTOR: frozenset(
        {
            Capability.VIEW_INCIDENTS,
            Capability.CREATE_INCIDENTS,
            Capability.APPROVE_REQUESTS,
            Capability.VIEW_REPORTS,
        }
    ),
    Role.OPERADOR: frozenset({Capability.VIEW_INCIDENTS, Capability.CREATE_INCIDENTS}),
    Role.CLIENTE: frozenset({Capability.VIEW_INCIDENTS}),
}

# -----------------------------
# Escalation graph: requester role -> roles allowed to approve its requests.
# Admins mutate directly, so they never appear as requesters.
# -----------------------------
APPROVERS_FOR: Dict[Role, FrozenSet[Role]] = {
    Role.GESTOR: frozenset({Role.ADMIN}),
    Role.OPERADOR: frozenset({Role.GESTOR, Role.ADMIN}),
}


def role_of(user: Any) -> Optional[Role]:
    return Role.parse(getattr(user, "role", None))


def has_capability(role: Optional[Role], capability: Capability) -> bool:
    if role is None:
        return False
    return capability in CAPABILITIES.get(role, frozenset())


def capabilities_of(user: Any) -> Dict[str, bool]:
    role = role_of(user)
    return {c.value: has_capability(role, c) for c in Capability}


def ensure_capability(user: Any, capability: Capability) -> Role:
    """Raise ForbiddenError unless the user's role carries `capability`."""
    role = role_of(user)
    if not has_capability(role, capability):
        raise ForbiddenError(
            f"Role {getattr(user, 'role', None)!r} lacks capability {capability.value!r}",
            message_key="auth.forbidden",
        )
    return role  # type: ignore[return-value]


def eligible_approvers(requester_role: Optional[Role]) -> FrozenSet[Role]:
    if requester_role is None:
        return frozenset()
    return APPROVERS_FOR.get(requester_role, frozenset())


def can_resolve(approver_role: Optional[Role], requester_role: Optional[Role]) -> bool:
    """Is `approver_role` one tier (or more, for operadores) above `requester_role`?"""
    return approver_role is not None and approver_role in eligible_approvers(requester_role)


def visible_requester_roles(viewer_role: Optional[Role]) -> FrozenSet[Role]:
    """
    Requester roles whose requests `viewer_role` may see and act on.
    gestor -> {operador}; admin -> {gestor, operador}; others -> empty.
    """
    if viewer_role is None:
        return frozenset()
    return frozenset(r for r, approvers in APPROVERS_FOR.items() if viewer_role in approvers)
