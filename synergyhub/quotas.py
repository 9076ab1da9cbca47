"""
synergyhub/quotas.py

Per-role headcount ceilings for a business.

Ceilings are fixed policy constants, not per-business configuration.
Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from synergyhub.models import Business, Role, coerce_role


# ============================================================================
# Role Ceilings
# ============================================================================

# None means unlimited
ROLE_CEILINGS: Dict[Role, Optional[int]] = {
    Role.SuperAdmin: 5,
    Role.Admin: 20,
    Role.Member: 1000,
    Role.Client: None,
}


def get_role_ceiling(role: Role) -> Optional[int]:
    return ROLE_CEILINGS[role]


def can_add_member_with_role(business: Business, role: Any) -> bool:
    """
    Check whether one more member of `role` fits under that role's ceiling.

    Pure predicate: does not mutate the business.

    Args:
        business: Business whose cached member_counts are checked
        role: Role enum or role string

    Returns:
        True if the current count is below the ceiling (always True for
        Client). False for unknown roles.
    """
    parsed = coerce_role(role)
    if parsed is None:
        return False

    ceiling = ROLE_CEILINGS[parsed]
    if ceiling is None:
        return True

    return business.member_counts.get(parsed) < ceiling


def remaining_seats(business: Business, role: Role) -> Optional[int]:
    ceiling = ROLE_CEILINGS[role]
    if ceiling is None:
        return None
    return max(0, ceiling - business.member_counts.get(role))


def get_member_quotas(business: Business) -> Dict[str, Dict[str, Optional[int]]]:
    """
    Current per-role counts alongside the fixed ceilings.

    Returns:
        {"super_admin": {"current": 1, "limit": 5, "remaining": 4}, ...}
        with limit/remaining None for Client.
    """
    counts = business.member_counts
    return {
        "super_admin": {
            "current": counts.super_admin,
            "limit": ROLE_CEILINGS[Role.SuperAdmin],
            "remaining": remaining_seats(business, Role.SuperAdmin),
        },
        "admin": {
            "current": counts.admin,
            "limit": ROLE_CEILINGS[Role.Admin],
            "remaining": remaining_seats(business, Role.Admin),
        },
        "member": {
            "current": counts.member,
            "limit": ROLE_CEILINGS[Role.Member],
            "remaining": remaining_seats(business, Role.Member),
        },
        "client": {
            "current": counts.client,
            "limit": None,
            "remaining": None,
        },
    }
