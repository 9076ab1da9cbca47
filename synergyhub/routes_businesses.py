"""
synergyhub/routes_businesses.py

Business CRUD plus the per-business read endpoints: quotas, the caller's
permissions, audit logs. Also the caller's own notifications.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Business-scoped reads require membership in that business
- Audit logs require permission "view_audit_logs"
- Delete is owner-only; owner rights pass to the remaining SuperAdmins once
  the owner is no longer a SuperAdmin member
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.engine import Connection

from synergyhub import services
from synergyhub.audit import list_audit_logs, request_meta
from synergyhub.auth_context import AuthContext, require_auth_context
from synergyhub.db import get_db
from synergyhub.dependencies import (
    MembershipContext,
    get_membership_context,
    load_business_or_404,
    require_permission,
)
from synergyhub.models import Business, Permission
from synergyhub.notifications import list_notifications
from synergyhub.quotas import get_member_quotas
from synergyhub.schemas_members import (
    BusinessCreateRequest,
    BusinessListResponse,
    BusinessResponse,
    PermissionsResponse,
    QuotaResponse,
)

router = APIRouter(tags=["businesses"])


def to_business_response(business: Business) -> BusinessResponse:
    return BusinessResponse(
        id=business.id,
        name=business.name,
        description=business.description,
        owner_id=business.owner_id,
        status=business.status,
        member_counts=business.member_counts.to_dict(),
        version=business.version,
        created_at=business.created_at,
        updated_at=business.updated_at,
    )


@router.post("/businesses", response_model=BusinessResponse, status_code=201)
def create_business(
    req: BusinessCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
    conn: Connection = Depends(get_db),
) -> BusinessResponse:
    """
    Create a business owned by the caller.

    The caller becomes its only member, as SuperAdmin.
    """
    business = services.create_business(conn, ctx.user_id, req.name, req.description, meta=request_meta(request))
    return to_business_response(business)


@router.get("/businesses", response_model=BusinessListResponse)
def list_businesses(
    ctx: AuthContext = Depends(require_auth_context),
    conn: Connection = Depends(get_db),
) -> BusinessListResponse:
    items = [to_business_response(b) for b in services.list_user_businesses(conn, ctx.user_id)]
    return BusinessListResponse(items=items, total=len(items))


@router.get("/businesses/{business_id}", response_model=BusinessResponse)
def get_business(
    mctx: MembershipContext = Depends(get_membership_context),
    conn: Connection = Depends(get_db),
) -> BusinessResponse:
    return to_business_response(load_business_or_404(conn, mctx.business_id))


@router.delete("/businesses/{business_id}")
def delete_business(
    mctx: MembershipContext = Depends(get_membership_context),
    conn: Connection = Depends(get_db),
) -> Dict[str, Any]:
    """
    Delete the business and all of its records. Owner only (403 otherwise).
    """
    deleted = services.delete_business(conn, mctx.user_id, mctx.business_id)
    return {"ok": True, "business_id": mctx.business_id, "deleted": deleted}


@router.get("/businesses/{business_id}/quotas", response_model=QuotaResponse)
def get_quotas(
    mctx: MembershipContext = Depends(get_membership_context),
    conn: Connection = Depends(get_db),
) -> QuotaResponse:
    """Current per-role counts with the fixed ceilings (limit None = unlimited)."""
    business = load_business_or_404(conn, mctx.business_id)
    return QuotaResponse(**get_member_quotas(business))


@router.get("/businesses/{business_id}/permissions", response_model=PermissionsResponse)
def get_permissions(mctx: MembershipContext = Depends(get_membership_context)) -> PermissionsResponse:
    return PermissionsResponse(
        business_id=mctx.business_id,
        role=mctx.role,
        is_owner=mctx.is_owner,
        permissions=mctx.permissions,
    )


@router.get("/businesses/{business_id}/audit-logs")
def get_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    mctx: MembershipContext = Depends(require_permission(Permission.VIEW_AUDIT_LOGS.value)),
    conn: Connection = Depends(get_db),
) -> Dict[str, Any]:
    items = list_audit_logs(conn, mctx.business_id, limit)
    return {"items": items, "total": len(items)}


@router.get("/notifications")
def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    ctx: AuthContext = Depends(require_auth_context),
    conn: Connection = Depends(get_db),
) -> Dict[str, List[Dict[str, Any]]]:
    return {"items": list_notifications(conn, ctx.user_id, limit)}
