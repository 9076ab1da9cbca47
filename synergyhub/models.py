from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


# Enums
class Role(str, Enum):
    """Membership role inside one business, ordered by privilege (descending)."""
    SuperAdmin = "SuperAdmin"
    Admin = "Admin"
    Member = "Member"
    Client = "Client"


def coerce_role(value: Any) -> Optional[Role]:
    """Return the Role for value, or None when it is not one of the four roles."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


class Permission(str, Enum):
    # Administration
    MANAGE_ADMINS = "manage_admins"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_ROLES = "manage_roles"
    MANAGE_PERMISSIONS = "manage_permissions"
    VIEW_AUDIT_LOGS = "view_audit_logs"

    # Workspace records
    MANAGE_CLIENTS = "manage_clients"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_TASKS = "manage_tasks"

    # Tasks
    VIEW_TASK = "view_task"
    EDIT_TASK = "edit_task"
    DELETE_TASK = "delete_task"
    ASSIGN_TASK = "assign_task"
    READ_COMMENTS = "read_comments"
    WRITE_COMMENTS = "write_comments"

    # Messaging and files
    MANAGE_MESSAGES = "manage_messages"
    SEND_MESSAGES = "send_messages"
    UPLOAD_FILES = "upload_files"


class InvitationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    expired = "expired"


# ---------------------------------------------------------
# Business aggregate
# ---------------------------------------------------------
@dataclass
class BusinessMember:
    user_id: int
    role: Role
    added_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "role": self.role.value, "added_at": self.added_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessMember":
        return cls(user_id=int(data["user_id"]), role=Role(data["role"]), added_at=data.get("added_at") or utc_now_iso())


@dataclass
class MemberCounts:
    """Denormalized per-role tally cached on the business row."""
    super_admin: int = 0
    admin: int = 0
    member: int = 0
    client: int = 0

    _FIELDS = {
        Role.SuperAdmin: "super_admin",
        Role.Admin: "admin",
        Role.Member: "member",
        Role.Client: "client",
    }

    def get(self, role: Role) -> int:
        return getattr(self, self._FIELDS[role])

    def increment(self, role: Role) -> None:
        name = self._FIELDS[role]
        setattr(self, name, getattr(self, name) + 1)

    def decrement(self, role: Role) -> None:
        name = self._FIELDS[role]
        setattr(self, name, getattr(self, name) - 1)

    def to_dict(self) -> Dict[str, int]:
        return {
            "super_admin": self.super_admin,
            "admin": self.admin,
            "member": self.member,
            "client": self.client,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemberCounts":
        return cls(
            super_admin=int(data.get("super_admin", 0)),
            admin=int(data.get("admin", 0)),
            member=int(data.get("member", 0)),
            client=int(data.get("client", 0)),
        )

    @classmethod
    def tally(cls, members: List[BusinessMember]) -> "MemberCounts":
        counts = cls()
        for m in members:
            counts.increment(m.role)
        return counts


@dataclass
class Business:
    """
    A tenant. The owner is a regular entry in `members` with role SuperAdmin
    and is counted once in `member_counts.super_admin`.

    `members` and `member_counts` are only changed through the functions in
    synergyhub.membership; `version` is bumped by every successful save.
    """
    id: Optional[int]
    name: str
    owner_id: int
    description: str = ""
    status: str = "Lead"
    members: List[BusinessMember] = field(default_factory=list)
    member_counts: MemberCounts = field(default_factory=MemberCounts)
    version: int = 0
    created_by: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def create_for_owner(cls, owner_id: int, name: str, description: str = "") -> "Business":
        now = utc_now_iso()
        owner = BusinessMember(user_id=owner_id, role=Role.SuperAdmin, added_at=now)
        return cls(
            id=None,
            name=name,
            owner_id=owner_id,
            description=description,
            members=[owner],
            member_counts=MemberCounts(super_admin=1),
            created_by=owner_id,
            created_at=now,
            updated_at=now,
        )

    def find_member(self, user_id: int) -> Optional[BusinessMember]:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def role_of(self, user_id: int) -> Optional[Role]:
        member = self.find_member(user_id)
        return member.role if member else None

    def has_owner_rights(self, user_id: int) -> bool:
        """
        The owner while they are still a SuperAdmin here; once the owner has
        left or been demoted, every remaining SuperAdmin.
        """
        if self.role_of(user_id) is not Role.SuperAdmin:
            return False
        if user_id == self.owner_id:
            return True
        return self.role_of(self.owner_id) is not Role.SuperAdmin

    def counts_consistent(self) -> bool:
        return MemberCounts.tally(self.members) == self.member_counts


# ---------------------------------------------------------
# Records
# ---------------------------------------------------------
class User(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    default_business_id: Optional[int] = None
    permissions: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: Optional[str] = None


class Invitation(BaseModel):
    id: int
    business_id: int
    email: str
    token: str
    role: Role
    status: InvitationStatus = InvitationStatus.pending
    invited_by: int
    expires_at: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
