"""
synergyhub/repository.py

Persistence for businesses, users, invitations and the dependent records that
membership changes touch.

Functions here never commit; the caller decides the transaction boundary.
All queries are parameterized and scoped by business_id where the table is
tenant-owned.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection

from synergyhub.db import execute_query, insert_returning_id, row_to_dict
from synergyhub.models import (
    Business,
    BusinessMember,
    Invitation,
    InvitationStatus,
    MemberCounts,
    User,
    utc_now_iso,
)


# ---------------------------------------------------------
# Businesses
# ---------------------------------------------------------
BUSINESS_COLUMNS = """
    id, name, description, owner_id, status, members_json, member_counts_json,
    version, created_by, created_at, updated_at
"""


def business_from_row(row) -> Business:
    data = row_to_dict(row)
    members = [BusinessMember.from_dict(m) for m in json.loads(data.get("members_json") or "[]")]
    counts = MemberCounts.from_dict(json.loads(data.get("member_counts_json") or "{}"))

    business = Business(
        id=data["id"],
        name=data["name"],
        owner_id=data["owner_id"],
        description=data.get("description") or "",
        status=data.get("status") or "Lead",
        members=members,
        member_counts=counts,
        version=data.get("version") or 0,
        created_by=data.get("created_by"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )

    if not business.counts_consistent():
        # Something wrote members_json without going through the engine.
        # Trust the members list; the next save persists the corrected tally.
        stored = business.member_counts.to_dict()
        business.member_counts = MemberCounts.tally(business.members)
        print(f"[MEMBERSHIP] WARNING: member_counts out of sync for business_id={business.id}: "
              f"stored={stored}, recounted={business.member_counts.to_dict()}")

    return business


def get_business(conn: Connection, business_id: int) -> Optional[Business]:
    row = execute_query(
        conn,
        f"SELECT {BUSINESS_COLUMNS} FROM businesses WHERE id = :id",
        {"id": business_id},
    ).first()
    if row is None:
        return None
    return business_from_row(row)


def insert_business(conn: Connection, business: Business) -> Business:
    business.id = insert_returning_id(
        conn,
        """
        INSERT INTO businesses (
            name, description, owner_id, status, members_json, member_counts_json,
            version, created_by, created_at, updated_at
        ) VALUES (
            :name, :description, :owner_id, :status, :members_json, :member_counts_json,
            :version, :created_by, :created_at, :updated_at
        )
        """,
        {
            "name": business.name,
            "description": business.description,
            "owner_id": business.owner_id,
            "status": business.status,
            "members_json": json.dumps([m.to_dict() for m in business.members]),
            "member_counts_json": json.dumps(business.member_counts.to_dict()),
            "version": business.version,
            "created_by": business.created_by,
            "created_at": business.created_at,
            "updated_at": business.updated_at,
        },
    )
    return business


def save_business(conn: Connection, business: Business) -> bool:
    """
    Write members and member_counts in one statement, guarded by version.

    Returns:
        True if the row was updated (business.version is bumped to match).
        False if another writer saved first; nothing was written.
    """
    now = utc_now_iso()
    result = execute_query(
        conn,
        """
        UPDATE businesses
           SET members_json = :members_json,
               member_counts_json = :member_counts_json,
               version = version + 1,
               updated_at = :updated_at
         WHERE id = :id AND version = :expected_version
        """,
        {
            "members_json": json.dumps([m.to_dict() for m in business.members]),
            "member_counts_json": json.dumps(business.member_counts.to_dict()),
            "updated_at": now,
            "id": business.id,
            "expected_version": business.version,
        },
    )
    if result.rowcount != 1:
        return False

    business.version += 1
    business.updated_at = now
    return True


def list_businesses_for_user(conn: Connection, user_id: int) -> List[Business]:
    rows = execute_query(
        conn,
        f"""
        SELECT {BUSINESS_COLUMNS} FROM businesses
         WHERE id IN (SELECT business_id FROM user_businesses WHERE user_id = :user_id)
         ORDER BY id
        """,
        {"user_id": user_id},
    ).fetchall()
    return [business_from_row(r) for r in rows]


def delete_business_records(conn: Connection, business_id: int) -> Dict[str, int]:
    """
    Delete a business and every record that belongs to it.

    Returns:
        Deleted row counts per table.
    """
    params = {"business_id": business_id}
    deleted: Dict[str, int] = {}

    deleted["project_members"] = execute_query(
        conn,
        "DELETE FROM project_members WHERE project_id IN (SELECT id FROM projects WHERE business_id = :business_id)",
        params,
    ).rowcount
    for table in ("tasks", "projects", "clients", "invitations", "audit_logs", "notifications", "user_businesses"):
        deleted[table] = execute_query(conn, f"DELETE FROM {table} WHERE business_id = :business_id", params).rowcount

    deleted["businesses"] = execute_query(conn, "DELETE FROM businesses WHERE id = :business_id", params).rowcount
    return deleted


# ---------------------------------------------------------
# Users
# ---------------------------------------------------------
USER_COLUMNS = "id, email, name, default_business_id, permissions_json, is_active, created_at"


def user_from_row(row) -> User:
    data = row_to_dict(row)
    return User(
        id=data["id"],
        email=data["email"],
        name=data.get("name"),
        default_business_id=data.get("default_business_id"),
        permissions=json.loads(data.get("permissions_json") or "[]"),
        is_active=bool(data.get("is_active", 1)),
        created_at=data.get("created_at"),
    )


def get_user(conn: Connection, user_id: int) -> Optional[User]:
    row = execute_query(conn, f"SELECT {USER_COLUMNS} FROM users WHERE id = :id", {"id": user_id}).first()
    return user_from_row(row) if row is not None else None


def get_user_credentials(conn: Connection, email: str) -> Dict[str, Any]:
    """Row including password_hash for login; {} when no such email."""
    row = execute_query(
        conn,
        f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = :email",
        {"email": email},
    ).first()
    return row_to_dict(row)


def get_users_by_ids(conn: Connection, user_ids: List[int]) -> Dict[int, User]:
    users: Dict[int, User] = {}
    # Small lists (one business's members); one query per chunk keeps the
    # parameter count portable.
    for start in range(0, len(user_ids), 500):
        chunk = user_ids[start:start + 500]
        placeholders = ", ".join(f":id{i}" for i in range(len(chunk)))
        rows = execute_query(
            conn,
            f"SELECT {USER_COLUMNS} FROM users WHERE id IN ({placeholders})",
            {f"id{i}": uid for i, uid in enumerate(chunk)},
        ).fetchall()
        for r in rows:
            user = user_from_row(r)
            users[user.id] = user
    return users


def create_user(conn: Connection, email: str, password_hash: str, name: Optional[str] = None) -> User:
    now = utc_now_iso()
    user_id = insert_returning_id(
        conn,
        """
        INSERT INTO users (email, name, password_hash, permissions_json, is_active, created_at)
        VALUES (:email, :name, :password_hash, '[]', 1, :created_at)
        """,
        {"email": email, "name": name, "password_hash": password_hash, "created_at": now},
    )
    return User(id=user_id, email=email, name=name, created_at=now)


def get_user_business_ids(conn: Connection, user_id: int) -> List[int]:
    rows = execute_query(
        conn,
        "SELECT business_id FROM user_businesses WHERE user_id = :user_id ORDER BY created_at, business_id",
        {"user_id": user_id},
    ).fetchall()
    return [r[0] for r in rows]


def link_user_business(conn: Connection, user_id: int, business_id: int) -> bool:
    """Add business to the user's businesses list; False if already linked."""
    exists = execute_query(
        conn,
        "SELECT 1 FROM user_businesses WHERE user_id = :user_id AND business_id = :business_id",
        {"user_id": user_id, "business_id": business_id},
    ).first()
    if exists is not None:
        return False

    execute_query(
        conn,
        "INSERT INTO user_businesses (user_id, business_id, created_at) VALUES (:user_id, :business_id, :created_at)",
        {"user_id": user_id, "business_id": business_id, "created_at": utc_now_iso()},
    )
    execute_query(
        conn,
        "UPDATE users SET default_business_id = :business_id WHERE id = :user_id AND default_business_id IS NULL",
        {"user_id": user_id, "business_id": business_id},
    )
    return True


def unlink_user_business(conn: Connection, user_id: int, business_id: int) -> Optional[int]:
    """
    Remove business from the user's businesses list.

    If it was the user's default business, the default moves to the first
    remaining business (or NULL).

    Returns:
        The user's default_business_id afterwards.
    """
    execute_query(
        conn,
        "DELETE FROM user_businesses WHERE user_id = :user_id AND business_id = :business_id",
        {"user_id": user_id, "business_id": business_id},
    )
    return reassign_default_business(conn, user_id, business_id)


def reassign_default_business(conn: Connection, user_id: int, removed_business_id: int) -> Optional[int]:
    row = execute_query(
        conn,
        "SELECT default_business_id FROM users WHERE id = :id",
        {"id": user_id},
    ).first()
    if row is None:
        return None

    current = row[0]
    if current != removed_business_id:
        return current

    remaining = get_user_business_ids(conn, user_id)
    new_default = remaining[0] if remaining else None
    execute_query(
        conn,
        "UPDATE users SET default_business_id = :new_default WHERE id = :id",
        {"new_default": new_default, "id": user_id},
    )
    return new_default


def get_business_user_ids(conn: Connection, business_id: int) -> List[int]:
    rows = execute_query(
        conn,
        "SELECT user_id FROM user_businesses WHERE business_id = :business_id",
        {"business_id": business_id},
    ).fetchall()
    return [r[0] for r in rows]


def set_user_permissions(conn: Connection, user_id: int, permissions: List[str]) -> None:
    execute_query(
        conn,
        "UPDATE users SET permissions_json = :permissions_json WHERE id = :id",
        {"permissions_json": json.dumps(permissions), "id": user_id},
    )


def unassign_tasks(conn: Connection, business_id: int, user_id: int) -> int:
    return execute_query(
        conn,
        "UPDATE tasks SET assignee_id = NULL WHERE business_id = :business_id AND assignee_id = :user_id",
        {"business_id": business_id, "user_id": user_id},
    ).rowcount


def remove_from_project_teams(conn: Connection, business_id: int, user_id: int) -> int:
    return execute_query(
        conn,
        """
        DELETE FROM project_members
         WHERE user_id = :user_id
           AND project_id IN (SELECT id FROM projects WHERE business_id = :business_id)
        """,
        {"business_id": business_id, "user_id": user_id},
    ).rowcount


# ---------------------------------------------------------
# Invitations
# ---------------------------------------------------------
INVITATION_COLUMNS = "id, business_id, email, token, role, status, invited_by, expires_at, created_at, updated_at"


def invitation_from_row(row) -> Invitation:
    return Invitation(**row_to_dict(row))


def create_invitation(
    conn: Connection,
    business_id: int,
    email: str,
    token: str,
    role: str,
    invited_by: int,
    expires_at: str,
) -> Invitation:
    now = utc_now_iso()
    params = {
        "business_id": business_id,
        "email": email,
        "token": token,
        "role": role,
        "status": InvitationStatus.pending.value,
        "invited_by": invited_by,
        "expires_at": expires_at,
        "created_at": now,
        "updated_at": now,
    }
    invitation_id = insert_returning_id(
        conn,
        """
        INSERT INTO invitations (
            business_id, email, token, role, status, invited_by, expires_at, created_at, updated_at
        ) VALUES (
            :business_id, :email, :token, :role, :status, :invited_by, :expires_at, :created_at, :updated_at
        )
        """,
        params,
    )
    return Invitation(id=invitation_id, **params)


def get_invitation(conn: Connection, business_id: int, invitation_id: int) -> Optional[Invitation]:
    row = execute_query(
        conn,
        f"SELECT {INVITATION_COLUMNS} FROM invitations WHERE id = :id AND business_id = :business_id",
        {"id": invitation_id, "business_id": business_id},
    ).first()
    return invitation_from_row(row) if row is not None else None


def get_invitation_by_token(conn: Connection, token: str) -> Optional[Invitation]:
    row = execute_query(
        conn,
        f"SELECT {INVITATION_COLUMNS} FROM invitations WHERE token = :token",
        {"token": token},
    ).first()
    return invitation_from_row(row) if row is not None else None


def find_pending_invitation(conn: Connection, business_id: int, email: str) -> Optional[Invitation]:
    """Live invitation for this email; expired ones never block a new one."""
    row = execute_query(
        conn,
        f"""
        SELECT {INVITATION_COLUMNS} FROM invitations
         WHERE business_id = :business_id AND email = :email AND status = 'pending'
           AND expires_at > :now
        """,
        {"business_id": business_id, "email": email, "now": utc_now_iso()},
    ).first()
    return invitation_from_row(row) if row is not None else None


def list_invitations(conn: Connection, business_id: int) -> List[Invitation]:
    rows = execute_query(
        conn,
        f"SELECT {INVITATION_COLUMNS} FROM invitations WHERE business_id = :business_id ORDER BY id DESC",
        {"business_id": business_id},
    ).fetchall()
    return [invitation_from_row(r) for r in rows]


def set_invitation_status(conn: Connection, invitation_id: int, status: InvitationStatus) -> None:
    execute_query(
        conn,
        "UPDATE invitations SET status = :status, updated_at = :updated_at WHERE id = :id",
        {"status": status.value, "updated_at": utc_now_iso(), "id": invitation_id},
    )


def expire_stale_invitations(conn: Connection, business_id: int, email: str) -> int:
    """Mark pending invitations past their expiry as expired."""
    return execute_query(
        conn,
        """
        UPDATE invitations SET status = 'expired', updated_at = :now
         WHERE business_id = :business_id AND email = :email
           AND status = 'pending' AND expires_at <= :now
        """,
        {"business_id": business_id, "email": email, "now": utc_now_iso()},
    ).rowcount


def renew_invitation(conn: Connection, business_id: int, invitation_id: int, expires_at: str) -> Optional[Invitation]:
    """Reset the expiry and set the invitation back to pending."""
    updated = execute_query(
        conn,
        """
        UPDATE invitations SET status = 'pending', expires_at = :expires_at, updated_at = :updated_at
         WHERE id = :id AND business_id = :business_id
        """,
        {"expires_at": expires_at, "updated_at": utc_now_iso(), "id": invitation_id, "business_id": business_id},
    ).rowcount
    if updated != 1:
        return None
    return get_invitation(conn, business_id, invitation_id)


def delete_invitation(conn: Connection, business_id: int, invitation_id: int) -> bool:
    return execute_query(
        conn,
        "DELETE FROM invitations WHERE id = :id AND business_id = :business_id",
        {"id": invitation_id, "business_id": business_id},
    ).rowcount == 1
