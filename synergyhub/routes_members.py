"""
synergyhub/routes_members.py

Business membership endpoints.

Security guarantees:
- Listing requires membership in the business
- Mutations require the caller to be SuperAdmin or Admin *in this business*
- The caller must also be allowed to manage both the target's current role
  and the requested role (ensure_can_manage_role)
- Quota, duplicate and last-SuperAdmin rules are enforced by the engine;
  its errors are mapped to JSON by the handler in main.py
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.engine import Connection

from synergyhub import services
from synergyhub.audit import request_meta
from synergyhub.db import get_db
from synergyhub.dependencies import (
    MEMBER_MANAGERS,
    MembershipContext,
    ensure_can_manage_role,
    get_membership_context,
    load_business_or_404,
    require_business_role,
)
from synergyhub.errors import MemberNotFoundError
from synergyhub.schemas_members import (
    AddMemberRequest,
    MemberListResponse,
    MemberResponse,
    RoleChangeResponse,
    UpdateMemberRoleRequest,
)

router = APIRouter(prefix="/businesses/{business_id}/members", tags=["members"])


@router.get("", response_model=MemberListResponse)
def list_members(
    mctx: MembershipContext = Depends(get_membership_context),
    conn: Connection = Depends(get_db),
) -> MemberListResponse:
    """Members in the order they were added, with user details populated."""
    business = load_business_or_404(conn, mctx.business_id)
    items = [MemberResponse(**m) for m in services.get_member_listing(conn, business)]
    return MemberListResponse(items=items, total=len(items), member_counts=business.member_counts.to_dict())


@router.post("", response_model=MemberResponse, status_code=201)
def add_member(
    req: AddMemberRequest,
    request: Request,
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> MemberResponse:
    """
    Add an existing user with a role.

    Raises:
        HTTPException(403): caller cannot grant this role
        QuotaExceededError / DuplicateMemberError (400), UserNotFoundError (404)
    """
    ensure_can_manage_role(mctx, req.role)

    business, member = services.add_business_member(
        conn, mctx.user_id, mctx.business_id, req.user_id, req.role, meta=request_meta(request)
    )
    return MemberResponse(
        user_id=member.user_id,
        role=member.role,
        added_at=member.added_at,
        is_owner=member.user_id == business.owner_id,
    )


@router.delete("/{user_id}")
def remove_member(
    request: Request,
    user_id: int = Path(..., ge=1),
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> Dict[str, Any]:
    business = load_business_or_404(conn, mctx.business_id)
    current = business.role_of(user_id)
    if current is None:
        raise MemberNotFoundError(user_id)
    ensure_can_manage_role(mctx, current)

    business, removed = services.remove_business_member(
        conn, mctx.user_id, mctx.business_id, user_id, meta=request_meta(request)
    )
    return {
        "ok": True,
        "user_id": removed.user_id,
        "role": removed.role.value,
        "member_counts": business.member_counts.to_dict(),
    }


@router.patch("/{user_id}/role", response_model=RoleChangeResponse)
def update_member_role(
    req: UpdateMemberRoleRequest,
    request: Request,
    user_id: int = Path(..., ge=1),
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> RoleChangeResponse:
    business = load_business_or_404(conn, mctx.business_id)
    current = business.role_of(user_id)
    if current is None:
        raise MemberNotFoundError(user_id)
    ensure_can_manage_role(mctx, current)
    ensure_can_manage_role(mctx, req.role)

    business, old_role = services.update_business_member_role(
        conn, mctx.user_id, mctx.business_id, user_id, req.role, meta=request_meta(request)
    )
    return RoleChangeResponse(
        user_id=user_id,
        old_role=old_role,
        new_role=business.role_of(user_id),
        member_counts=business.member_counts.to_dict(),
    )
