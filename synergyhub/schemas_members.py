"""
synergyhub/schemas_members.py

Pydantic schemas for auth, businesses, membership, quotas and invitations.
Roles are a closed enum here, so an unknown role is rejected with 422 before
any handler runs.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from synergyhub.models import Role

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(v):
    if isinstance(v, str):
        v = v.strip().lower()
    if not v or not _EMAIL_RE.match(v):
        raise ValueError("invalid email address")
    return v


# ========================================================================
# AUTH SCHEMAS
# ========================================================================

class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=6, max_length=128)
    name: Optional[str] = Field(None, max_length=120)

    @validator("email", pre=True)
    def normalize_email(cls, v):
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: str
    password: str

    @validator("email", pre=True)
    def normalize_email(cls, v):
        """Trim and lowercase; format is not re-validated at login."""
        if isinstance(v, str):
            return v.strip().lower()
        return v


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


# ========================================================================
# BUSINESS SCHEMAS
# ========================================================================

class BusinessCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Business name (required, 1-200 chars)")
    description: str = Field("", max_length=2000)

    @validator("name", pre=True)
    def trim_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @validator("name")
    def validate_name_non_empty(cls, v):
        if not v:
            raise ValueError("name must not be empty")
        return v


class MemberCountsResponse(BaseModel):
    super_admin: int = 0
    admin: int = 0
    member: int = 0
    client: int = 0


class BusinessResponse(BaseModel):
    id: int
    name: str
    description: str = ""
    owner_id: int
    status: str = "Lead"
    member_counts: MemberCountsResponse
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        extra = "ignore"


class BusinessListResponse(BaseModel):
    items: List[BusinessResponse] = Field(default_factory=list)
    total: int = 0


# ========================================================================
# MEMBER SCHEMAS
# ========================================================================

class AddMemberRequest(BaseModel):
    """Add an existing user to the business.

    Only the membership fields are accepted; counts and the members list
    are never client-writable.
    """
    user_id: int = Field(..., ge=1, description="Id of an existing user")
    role: Role = Field(..., description="SuperAdmin, Admin, Member or Client")


class UpdateMemberRoleRequest(BaseModel):
    role: Role = Field(..., description="New role for the member")


class MemberResponse(BaseModel):
    user_id: int
    role: Role
    added_at: Optional[str] = None
    is_owner: bool = False
    email: Optional[str] = None
    name: Optional[str] = None


class MemberListResponse(BaseModel):
    items: List[MemberResponse] = Field(default_factory=list)
    total: int = 0
    member_counts: MemberCountsResponse


class RoleChangeResponse(BaseModel):
    user_id: int
    old_role: Role
    new_role: Role
    member_counts: MemberCountsResponse


# ========================================================================
# QUOTA / PERMISSION SCHEMAS
# ========================================================================

class RoleQuota(BaseModel):
    current: int
    limit: Optional[int] = Field(None, description="None means unlimited")
    remaining: Optional[int] = None


class QuotaResponse(BaseModel):
    super_admin: RoleQuota
    admin: RoleQuota
    member: RoleQuota
    client: RoleQuota


class PermissionsResponse(BaseModel):
    business_id: int
    role: Role
    is_owner: bool
    permissions: List[str]


# ========================================================================
# INVITATION SCHEMAS
# ========================================================================

class InvitationCreateRequest(BaseModel):
    email: str = Field(..., max_length=254)
    role: Role = Role.Member

    @validator("email", pre=True)
    def normalize_email(cls, v):
        return _normalize_email(v)


class InvitationResponse(BaseModel):
    """Never includes the token except in the create and resend responses."""
    id: int
    business_id: int
    email: str
    role: Role
    status: str
    invited_by: int
    expires_at: str
    created_at: Optional[str] = None
    token: Optional[str] = None


class InvitationListResponse(BaseModel):
    items: List[InvitationResponse] = Field(default_factory=list)
    total: int = 0


class InvitationValidationResponse(BaseModel):
    """What the signup/join page needs; no token, no inviter."""
    email: str
    business_id: int
    role: Role
