"""
synergyhub/membership.py

Membership/quota engine.

Owns the invariant that a business's `members` list and its denormalized
`member_counts` never disagree, and that role transitions never exceed the
role ceilings or leave a business without a SuperAdmin.

Two layers:
- add_member / remove_member / update_member_role validate first and then
  mutate a Business in memory. A raised error means nothing changed.
- mutate_business runs one of those against the stored document as a single
  versioned write, reloading and re-checking when another request saved the
  same business in between.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Tuple, TypeVar

from sqlalchemy.engine import Connection

from synergyhub import config
from synergyhub.db import commit, rollback
from synergyhub.errors import (
    BusinessNotFoundError,
    ConcurrentModificationError,
    DuplicateMemberError,
    InvalidRoleError,
    LastSuperAdminError,
    MemberNotFoundError,
    QuotaExceededError,
)
from synergyhub.models import Business, BusinessMember, Role, coerce_role, utc_now_iso
from synergyhub.quotas import can_add_member_with_role, get_role_ceiling
from synergyhub.repository import get_business, save_business

T = TypeVar("T")


def _require_role(role: Any) -> Role:
    parsed = coerce_role(role)
    if parsed is None:
        raise InvalidRoleError(role)
    return parsed


def _require_member(business: Business, user_id: int) -> BusinessMember:
    member = business.find_member(user_id)
    if member is None:
        raise MemberNotFoundError(user_id)
    return member


def _is_last_super_admin(business: Business, member: BusinessMember) -> bool:
    return member.role is Role.SuperAdmin and business.member_counts.super_admin <= 1


# ============================================================================
# In-memory operations
# ============================================================================

def add_member(business: Business, user_id: int, role: Any, added_at: Optional[str] = None) -> BusinessMember:
    """
    Append a member and count them against their role's ceiling.

    Raises:
        InvalidRoleError: role is not one of the four roles
        DuplicateMemberError: user already in members
        QuotaExceededError: role ceiling reached
    """
    parsed = _require_role(role)

    if business.find_member(user_id) is not None:
        raise DuplicateMemberError(user_id)

    if not can_add_member_with_role(business, parsed):
        raise QuotaExceededError(parsed.value, get_role_ceiling(parsed))

    member = BusinessMember(user_id=user_id, role=parsed, added_at=added_at or utc_now_iso())
    business.members.append(member)
    business.member_counts.increment(parsed)
    return member


def remove_member(business: Business, user_id: int) -> BusinessMember:
    """
    Remove a member and release their seat.

    The owner is not special-cased: any SuperAdmin, owner included, can be
    removed while another SuperAdmin remains.

    Returns:
        The removed entry (its role is what the caller needs for cleanup).

    Raises:
        MemberNotFoundError, LastSuperAdminError
    """
    member = _require_member(business, user_id)

    if _is_last_super_admin(business, member):
        raise LastSuperAdminError()

    business.members = [m for m in business.members if m.user_id != user_id]
    business.member_counts.decrement(member.role)
    return member


def update_member_role(business: Business, user_id: int, new_role: Any) -> Role:
    """
    Move a member to another role.

    Setting the role a member already holds is a no-op: no quota check and no
    count change.

    Returns:
        The member's previous role.

    Raises:
        InvalidRoleError, MemberNotFoundError, LastSuperAdminError,
        QuotaExceededError (for the destination role)
    """
    parsed = _require_role(new_role)
    member = _require_member(business, user_id)
    old_role = member.role

    if old_role is parsed:
        return old_role

    if _is_last_super_admin(business, member):
        raise LastSuperAdminError()

    if not can_add_member_with_role(business, parsed):
        raise QuotaExceededError(parsed.value, get_role_ceiling(parsed))

    business.member_counts.decrement(old_role)
    business.member_counts.increment(parsed)
    member.role = parsed
    return old_role


# ============================================================================
# Persisted operations
# ============================================================================

def mutate_business(
    conn: Connection,
    business_id: int,
    operation: Callable[[Business], T],
) -> Tuple[Business, T]:
    """
    Load a business, apply `operation`, and save it as one versioned write.

    If another writer saved the business after we loaded it, the save matches
    no row; we reload and run `operation` again against the fresh state, up to
    config.MEMBERSHIP_MAX_RETRIES attempts.

    Args:
        conn: Database connection
        business_id: Business to mutate
        operation: One of the in-memory operations, bound to its arguments

    Returns:
        (saved business, operation result)

    Raises:
        BusinessNotFoundError: no such business
        ConcurrentModificationError: retry budget exhausted
        Any MembershipError raised by `operation` (nothing is written)
    """
    attempts = max(1, config.MEMBERSHIP_MAX_RETRIES)

    for attempt in range(1, attempts + 1):
        try:
            business = get_business(conn, business_id)
            if business is None:
                raise BusinessNotFoundError(business_id)

            result = operation(business)
            saved = save_business(conn, business)
        except Exception:
            rollback(conn)
            raise

        if saved:
            commit(conn)
            if config.IS_DEV:
                print(f"[MEMBERSHIP] Saved business_id={business_id} version={business.version} "
                      f"counts={business.member_counts.to_dict()} attempt={attempt}")
            return business, result

        rollback(conn)
        print(f"[MEMBERSHIP] Version conflict on business_id={business_id} "
              f"(attempt {attempt}/{attempts}), reloading")

    raise ConcurrentModificationError(business_id, attempts)
