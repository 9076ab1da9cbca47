"""
synergyhub/services.py

Membership use cases.

Each use case performs the Business mutation first (the source of truth, one
versioned write) and then updates the dependent records - the user's
businesses list and permissions, task assignments, project teams, audit log,
notifications - as separate best-effort writes. A failure in those later
steps is logged and left for repair; it never rolls back the membership
change.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from synergyhub import config
from synergyhub import repository as repo
from synergyhub.audit import log_audit
from synergyhub.db import commit, rollback
from synergyhub.errors import (
    BusinessNotFoundError,
    DuplicateMemberError,
    InvalidRoleError,
    InvitationError,
    InvitationNotFoundError,
    NotBusinessOwnerError,
    UserNotFoundError,
)
from synergyhub.membership import add_member, mutate_business, remove_member, update_member_role
from synergyhub.models import (
    Business,
    BusinessMember,
    Invitation,
    InvitationStatus,
    Role,
    User,
    coerce_role,
)
from synergyhub.notifications import notify
from synergyhub.rbac import sorted_permissions

Meta = Optional[Dict[str, Optional[str]]]


def _best_effort(conn: Connection, label: str, fn: Callable[..., Any], *args: Any) -> bool:
    try:
        fn(conn, *args)
        commit(conn)
    except SQLAlchemyError as e:
        rollback(conn)
        print(f"[MEMBERSHIP] WARNING: {label} failed; membership change kept: {e}")
        return False
    return True


def _require_user(conn: Connection, user_id: int) -> User:
    user = repo.get_user(conn, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def _require_business(conn: Connection, business_id: int) -> Business:
    business = repo.get_business(conn, business_id)
    if business is None:
        raise BusinessNotFoundError(business_id)
    return business


# ============================================================================
# Businesses
# ============================================================================

def create_business(conn: Connection, owner_id: int, name: str, description: str = "", meta: Meta = None) -> Business:
    """Create a business whose only member is the owner, as SuperAdmin."""
    _require_user(conn, owner_id)

    business = Business.create_for_owner(owner_id, name, description)
    try:
        repo.insert_business(conn, business)
        commit(conn)
    except Exception:
        rollback(conn)
        raise

    print(f"[BUSINESS] Created business_id={business.id} owner_id={owner_id}")

    _best_effort(conn, "link owner to business", repo.link_user_business, owner_id, business.id)
    _best_effort(conn, "set owner permissions", repo.set_user_permissions, owner_id, sorted_permissions(Role.SuperAdmin))
    log_audit(conn, business.id, owner_id, "BUSINESS_CREATED", "Business", business.id,
              metadata={"name": name}, meta=meta)
    return business


def list_user_businesses(conn: Connection, user_id: int) -> List[Business]:
    return repo.list_businesses_for_user(conn, user_id)


def delete_business(conn: Connection, actor_id: int, business_id: int) -> Dict[str, int]:
    """
    Owner-only (see Business.has_owner_rights). Deletes the business and
    everything that belongs to it, and moves affected users' default
    business elsewhere.
    """
    business = _require_business(conn, business_id)
    if not business.has_owner_rights(actor_id):
        raise NotBusinessOwnerError()

    affected = set(repo.get_business_user_ids(conn, business_id))
    affected.update(m.user_id for m in business.members)

    try:
        deleted = repo.delete_business_records(conn, business_id)
        for user_id in sorted(affected):
            repo.reassign_default_business(conn, user_id, business_id)
        commit(conn)
    except Exception:
        rollback(conn)
        raise

    print(f"[BUSINESS] Deleted business_id={business_id} by user_id={actor_id}: {deleted}")
    return deleted


# ============================================================================
# Members
# ============================================================================

def add_business_member(
    conn: Connection,
    actor_id: int,
    business_id: int,
    user_id: int,
    role: Any,
    meta: Meta = None,
) -> Tuple[Business, BusinessMember]:
    _require_user(conn, user_id)

    business, member = mutate_business(conn, business_id, lambda b: add_member(b, user_id, role))

    _best_effort(conn, "link user to business", repo.link_user_business, user_id, business_id)
    _best_effort(conn, "set user permissions", repo.set_user_permissions, user_id, sorted_permissions(member.role))
    log_audit(conn, business_id, actor_id, "MEMBER_ADDED", "User", user_id,
              changes={"role": {"old": None, "new": member.role.value}}, meta=meta)
    notify(conn, user_id, "member_added",
           f"You were added to {business.name} as {member.role.value}", business_id=business_id)
    return business, member


def remove_business_member(
    conn: Connection,
    actor_id: int,
    business_id: int,
    user_id: int,
    meta: Meta = None,
) -> Tuple[Business, BusinessMember]:
    business, removed = mutate_business(conn, business_id, lambda b: remove_member(b, user_id))

    _best_effort(conn, "unassign tasks", repo.unassign_tasks, business_id, user_id)
    _best_effort(conn, "remove from project teams", repo.remove_from_project_teams, business_id, user_id)
    _best_effort(conn, "unlink user from business", repo.unlink_user_business, user_id, business_id)
    log_audit(conn, business_id, actor_id, "MEMBER_REMOVED", "User", user_id,
              changes={"role": {"old": removed.role.value, "new": None}}, meta=meta)
    notify(conn, user_id, "member_removed", f"You were removed from {business.name}", business_id=business_id)
    return business, removed


def update_business_member_role(
    conn: Connection,
    actor_id: int,
    business_id: int,
    user_id: int,
    new_role: Any,
    meta: Meta = None,
) -> Tuple[Business, Role]:
    _require_user(conn, user_id)

    business, old_role = mutate_business(conn, business_id, lambda b: update_member_role(b, user_id, new_role))
    current = business.role_of(user_id)

    if old_role is not current:
        _best_effort(conn, "recompute user permissions", repo.set_user_permissions, user_id, sorted_permissions(current))
        log_audit(conn, business_id, actor_id, "MEMBER_ROLE_CHANGED", "User", user_id,
                  changes={"role": {"old": old_role.value, "new": current.value}}, meta=meta)
        notify(conn, user_id, "role_changed",
               f"Your role in {business.name} is now {current.value}", business_id=business_id)
    return business, old_role


def get_member_listing(conn: Connection, business: Business) -> List[Dict[str, Any]]:
    """Members in insertion order with their user details populated."""
    users = repo.get_users_by_ids(conn, [m.user_id for m in business.members])
    listing = []
    for m in business.members:
        user = users.get(m.user_id)
        listing.append({
            "user_id": m.user_id,
            "role": m.role.value,
            "added_at": m.added_at,
            "is_owner": m.user_id == business.owner_id,
            "email": user.email if user else None,
            "name": user.name if user else None,
        })
    return listing


# ============================================================================
# Invitations
# ============================================================================

def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _new_expiry() -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(days=config.INVITATION_EXPIRY_DAYS)
    return expires_at.isoformat(timespec="seconds").replace("+00:00", "Z")


def create_invitation(
    conn: Connection,
    actor_id: int,
    business_id: int,
    email: str,
    role: Any,
    meta: Meta = None,
) -> Invitation:
    parsed = coerce_role(role)
    if parsed is None:
        raise InvalidRoleError(role)

    business = _require_business(conn, business_id)
    email_norm = email.strip().lower()

    existing = repo.get_user_credentials(conn, email_norm)
    if existing and business.find_member(existing["id"]) is not None:
        raise DuplicateMemberError(existing["id"])

    if repo.find_pending_invitation(conn, business_id, email_norm) is not None:
        raise InvitationError("An invitation has already been sent to this email")

    try:
        repo.expire_stale_invitations(conn, business_id, email_norm)
        invitation = repo.create_invitation(
            conn,
            business_id=business_id,
            email=email_norm,
            token=secrets.token_hex(32),
            role=parsed.value,
            invited_by=actor_id,
            expires_at=_new_expiry(),
        )
        commit(conn)
    except Exception:
        rollback(conn)
        raise

    if config.IS_DEV:
        print(f"[INVITE] Created invitation_id={invitation.id} business_id={business_id} role={parsed.value}")

    log_audit(conn, business_id, actor_id, "INVITATION_SENT", "Invitation", invitation.id,
              metadata={"email": email_norm, "role": parsed.value}, meta=meta)
    return invitation


def cancel_invitation(conn: Connection, business_id: int, invitation_id: int) -> None:
    try:
        deleted = repo.delete_invitation(conn, business_id, invitation_id)
        commit(conn)
    except Exception:
        rollback(conn)
        raise
    if not deleted:
        raise InvitationNotFoundError()


def get_business_invitation(conn: Connection, business_id: int, invitation_id: int) -> Invitation:
    invitation = repo.get_invitation(conn, business_id, invitation_id)
    if invitation is None:
        raise InvitationNotFoundError()
    return invitation


def resend_invitation(
    conn: Connection,
    actor_id: int,
    business_id: int,
    invitation_id: int,
    meta: Meta = None,
) -> Invitation:
    """
    Give a pending or expired invitation a fresh expiry and make it pending
    again. The token is kept, so links already sent keep working.

    Raises:
        InvitationNotFoundError: no such invitation in this business
        InvitationError: already accepted, or another live invitation exists
    """
    invitation = get_business_invitation(conn, business_id, invitation_id)
    if invitation.status is InvitationStatus.accepted:
        raise InvitationError("Invitation has already been accepted")

    live = repo.find_pending_invitation(conn, business_id, invitation.email)
    if live is not None and live.id != invitation.id:
        raise InvitationError("An invitation has already been sent to this email")

    try:
        renewed = repo.renew_invitation(conn, business_id, invitation_id, _new_expiry())
        commit(conn)
    except Exception:
        rollback(conn)
        raise
    if renewed is None:
        raise InvitationNotFoundError()

    if config.IS_DEV:
        print(f"[INVITE] Resent invitation_id={invitation_id} business_id={business_id} expires_at={renewed.expires_at}")

    log_audit(conn, business_id, actor_id, "INVITATION_RESENT", "Invitation", invitation_id,
              metadata={"email": renewed.email, "role": renewed.role.value}, meta=meta)
    return renewed


def validate_invitation(conn: Connection, token: str) -> Invitation:
    """
    The invitation for `token` if it can still be accepted.

    Raises:
        InvitationNotFoundError: unknown token, or not pending, or expired
    """
    invitation = repo.get_invitation_by_token(conn, token)
    if invitation is None or invitation.status is not InvitationStatus.pending:
        raise InvitationNotFoundError()
    if _parse_iso(invitation.expires_at) <= datetime.now(timezone.utc):
        raise InvitationNotFoundError()
    return invitation


def accept_invitation(conn: Connection, token: str, user: User, meta: Meta = None) -> Tuple[Business, BusinessMember]:
    """
    Join the invited business with the invited role.

    The invitation must be pending, unexpired, and addressed to the
    accepting user's email. Quota and duplicate checks happen in the engine.
    """
    invitation = repo.get_invitation_by_token(conn, token)
    if invitation is None:
        raise InvitationNotFoundError()

    if invitation.status is not InvitationStatus.pending:
        raise InvitationError(f"Invitation is {invitation.status.value}")

    if _parse_iso(invitation.expires_at) <= datetime.now(timezone.utc):
        _best_effort(conn, "expire invitation", repo.set_invitation_status, invitation.id, InvitationStatus.expired)
        raise InvitationError("Invitation has expired")

    if invitation.email != user.email.strip().lower():
        raise InvitationError("Invitation was sent to a different email address")

    business, member = add_business_member(
        conn, invitation.invited_by, invitation.business_id, user.id, invitation.role, meta=meta
    )
    _best_effort(conn, "mark invitation accepted", repo.set_invitation_status, invitation.id, InvitationStatus.accepted)

    if config.IS_DEV:
        print(f"[INVITE] Accepted invitation_id={invitation.id} user_id={user.id}")
    return business, member


def list_invitations(conn: Connection, business_id: int) -> List[Invitation]:
    return repo.list_invitations(conn, business_id)
