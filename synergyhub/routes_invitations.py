"""
synergyhub/routes_invitations.py

Email invitations to join a business with a role.

Sending, resending, listing and cancelling require SuperAdmin or Admin in the
business, and the same role-management rule as adding a member directly.
Accepting requires only authentication; the token and the caller's email
decide. Validating a token is public so the join page works before signup.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.engine import Connection

from synergyhub import services
from synergyhub.audit import request_meta
from synergyhub.auth_context import AuthContext, require_auth_context
from synergyhub.db import get_db
from synergyhub.dependencies import (
    MEMBER_MANAGERS,
    MembershipContext,
    ensure_can_manage_role,
    require_business_role,
)
from synergyhub.models import Invitation
from synergyhub.repository import get_user
from synergyhub.schemas_members import (
    InvitationCreateRequest,
    InvitationListResponse,
    InvitationResponse,
    InvitationValidationResponse,
    MemberResponse,
)

router = APIRouter(tags=["invitations"])


def to_invitation_response(invitation: Invitation, include_token: bool = False) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        business_id=invitation.business_id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.status.value,
        invited_by=invitation.invited_by,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
        token=invitation.token if include_token else None,
    )


@router.post("/businesses/{business_id}/invitations", response_model=InvitationResponse, status_code=201)
def create_invitation(
    req: InvitationCreateRequest,
    request: Request,
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> InvitationResponse:
    ensure_can_manage_role(mctx, req.role)
    invitation = services.create_invitation(
        conn, mctx.user_id, mctx.business_id, req.email, req.role, meta=request_meta(request)
    )
    return to_invitation_response(invitation, include_token=True)


@router.get("/businesses/{business_id}/invitations", response_model=InvitationListResponse)
def list_invitations(
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> InvitationListResponse:
    items = [to_invitation_response(i) for i in services.list_invitations(conn, mctx.business_id)]
    return InvitationListResponse(items=items, total=len(items))


@router.delete("/businesses/{business_id}/invitations/{invitation_id}")
def cancel_invitation(
    invitation_id: int = Path(..., ge=1),
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> Dict[str, Any]:
    services.cancel_invitation(conn, mctx.business_id, invitation_id)
    return {"ok": True, "invitation_id": invitation_id}


@router.post("/businesses/{business_id}/invitations/{invitation_id}/resend", response_model=InvitationResponse)
def resend_invitation(
    request: Request,
    invitation_id: int = Path(..., ge=1),
    mctx: MembershipContext = Depends(require_business_role(MEMBER_MANAGERS)),
    conn: Connection = Depends(get_db),
) -> InvitationResponse:
    """Fresh expiry, back to pending; same role-management rule as sending."""
    invitation = services.get_business_invitation(conn, mctx.business_id, invitation_id)
    ensure_can_manage_role(mctx, invitation.role)

    renewed = services.resend_invitation(
        conn, mctx.user_id, mctx.business_id, invitation_id, meta=request_meta(request)
    )
    return to_invitation_response(renewed, include_token=True)


@router.get("/invitations/{token}", response_model=InvitationValidationResponse)
def validate_invitation(
    token: str = Path(..., min_length=16, max_length=128),
    conn: Connection = Depends(get_db),
) -> InvitationValidationResponse:
    """404 unless the invitation is pending and unexpired."""
    invitation = services.validate_invitation(conn, token)
    return InvitationValidationResponse(
        email=invitation.email,
        business_id=invitation.business_id,
        role=invitation.role,
    )


@router.post("/invitations/{token}/accept", response_model=MemberResponse)
def accept_invitation(
    request: Request,
    token: str = Path(..., min_length=16, max_length=128),
    ctx: AuthContext = Depends(require_auth_context),
    conn: Connection = Depends(get_db),
) -> MemberResponse:
    user = get_user(conn, ctx.user_id)
    business, member = services.accept_invitation(conn, token, user, meta=request_meta(request))
    return MemberResponse(
        user_id=member.user_id,
        role=member.role,
        added_at=member.added_at,
        is_owner=member.user_id == business.owner_id,
        email=user.email,
        name=user.name,
    )
