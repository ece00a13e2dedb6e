# Overview: Explicit actor identity and role checks for core operations.

"""
Access control for service calls.

Services never read the request/session. Every mutating operation receives an
explicit Actor resolved by the HTTP layer (decorators.require_auth) or built
by the CLI/scheduler. Roles:

- admin: superset of every role
- operator: ARN lifecycle, dispatch (operator slot), blank-card issuing
- officer: own stock partition, requests, dispatch (officer slot)
- supervisor: read-only reporting
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ForbiddenError


ROLE_ADMIN = "admin"
ROLE_OPERATOR = "operator"
ROLE_OFFICER = "officer"
ROLE_SUPERVISOR = "supervisor"
VALID_ROLES = {ROLE_ADMIN, ROLE_OPERATOR, ROLE_OFFICER, ROLE_SUPERVISOR}


@dataclass(frozen=True)
class Actor:
    user_id: int | None
    role: str
    name: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def partition(self) -> int | None:
        """Stock partition this actor books into: own store for officers, central otherwise."""
        if self.role == ROLE_OFFICER:
            return self.user_id
        return None


SYSTEM_ACTOR = Actor(user_id=None, role=ROLE_ADMIN, name="System")


def has_role(actor: Actor, *roles: str) -> bool:
    return actor.role == ROLE_ADMIN or actor.role in roles


def ensure_role(actor: Actor, *roles: str) -> None:
    """Raise ForbiddenError unless actor holds one of roles (admin always passes)."""
    if not has_role(actor, *roles):
        allowed = ", ".join(sorted({ROLE_ADMIN, *roles}))
        raise ForbiddenError(
            f"Role '{actor.role}' may not perform this action (requires one of: {allowed})",
            role=actor.role,
        )
