"""
synergyhub/dependencies.py

Reusable FastAPI dependencies for business-scoped authorization.

The caller's role is looked up in the business's own members list on every
request; nothing role-related is taken from the token or the request body.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from fastapi import Depends, HTTPException, Path
from pydantic import BaseModel
from sqlalchemy.engine import Connection

from synergyhub import config
from synergyhub.auth_context import AuthContext, require_auth_context
from synergyhub.db import get_db
from synergyhub.models import Business, Role
from synergyhub.rbac import can_manage_role, has_permissions, sorted_permissions
from synergyhub.repository import get_business


class MembershipContext(BaseModel):
    """The authenticated caller as a member of one business."""
    user_id: int
    business_id: int
    role: Role
    permissions: List[str]
    is_owner: bool = False
    owner_rights: bool = False


def get_membership_context(
    business_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_auth_context),
    conn: Connection = Depends(get_db),
) -> MembershipContext:
    """
    Resolve the caller's membership in the business named by the path.

    Raises:
        HTTPException(404): business does not exist
        HTTPException(403): caller is not a member
    """
    business = get_business(conn, business_id)
    if business is None:
        raise HTTPException(status_code=404, detail="Business not found")

    role = business.role_of(ctx.user_id)
    if role is None:
        if config.IS_DEV:
            print(f"[AUTHZ] Not a member: user_id={ctx.user_id} business_id={business_id}")
        raise HTTPException(status_code=403, detail="You are not a member of this business")

    return _context_for(business, ctx.user_id, role)


def _context_for(business: Business, user_id: int, role: Role) -> MembershipContext:
    return MembershipContext(
        user_id=user_id,
        business_id=business.id,
        role=role,
        permissions=sorted_permissions(role),
        is_owner=business.owner_id == user_id,
        owner_rights=business.has_owner_rights(user_id),
    )


def require_business_role(allowed: Iterable[Role]) -> Callable:
    """
    Dependency factory: the caller's role in the business must be one of `allowed`.

    Usage in routes:
        @router.post("/{business_id}/members")
        def add(mctx: MembershipContext = Depends(require_business_role([Role.SuperAdmin, Role.Admin]))):
            ...
    """
    allowed_roles = set(allowed)

    def _check_role(mctx: MembershipContext = Depends(get_membership_context)) -> MembershipContext:
        if mctx.role not in allowed_roles:
            if config.IS_DEV:
                print(f"[AUTHZ] Role denied: user_id={mctx.user_id} business_id={mctx.business_id} "
                      f"role={mctx.role.value}")
            raise HTTPException(
                status_code=403,
                detail="Insufficient permissions - your role in this business does not allow this action",
            )
        return mctx

    return _check_role


def require_permission(*permissions: str) -> Callable:
    """
    Dependency factory: the caller's role must grant every listed permission.

    Raises:
        HTTPException(403): any permission missing
    """
    def _check_permission(mctx: MembershipContext = Depends(get_membership_context)) -> MembershipContext:
        if not has_permissions(mctx.role, permissions):
            if config.IS_DEV:
                print(f"[AUTHZ] Permission denied: permissions={list(permissions)} "
                      f"role={mctx.role.value} business_id={mctx.business_id}")
            raise HTTPException(
                status_code=403,
                detail="Insufficient permissions - this feature is not available with your current access level",
            )

        if config.IS_DEV:
            print(f"[AUTHZ] Permission granted: permissions={list(permissions)} role={mctx.role.value}")
        return mctx

    return _check_permission


def load_business_or_404(conn: Connection, business_id: int) -> Business:
    business = get_business(conn, business_id)
    if business is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


MEMBER_MANAGERS = [Role.SuperAdmin, Role.Admin]


def ensure_can_manage_role(mctx: MembershipContext, target_role: Optional[Role]) -> None:
    """
    403 unless the caller may grant, change or revoke `target_role`.

    SuperAdmin seats are managed only by whoever holds owner rights (see
    Business.has_owner_rights).
    """
    if target_role is None:
        return
    if can_manage_role(mctx.role, target_role):
        return
    if mctx.owner_rights and target_role is Role.SuperAdmin:
        return

    if config.IS_DEV:
        print(f"[AUTHZ] Role management denied: actor_role={mctx.role.value} "
              f"target_role={target_role.value} business_id={mctx.business_id}")
    raise HTTPException(
        status_code=403,
        detail=f"Your role ({mctx.role.value}) cannot manage {target_role.value} members",
    )
