"""
Role capability checks.

Roles are ranked; a role can do everything the roles below it can:

    SELLER < MANAGER < ADMIN

Routes declare the minimum role with @require_role; "self or MANAGER+"
checks call can() directly.
"""

from __future__ import annotations

ROLE_RANK = {
    "SELLER": 1,
    "MANAGER": 2,
    "ADMIN": 3,
}

ROLES = tuple(ROLE_RANK)


def can(actor_role: str | None, required_role: str) -> bool:
    """Return True when actor_role is at least required_role."""
    if required_role not in ROLE_RANK:
        raise ValueError(f"Unknown role: {required_role}")
    return ROLE_RANK.get(actor_role or "", 0) >= ROLE_RANK[required_role]
