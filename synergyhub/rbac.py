"""
synergyhub/rbac.py

Role-Based Access Control (RBAC) for business membership.

A member's role inside a business determines their permission set through a
fixed table (not persisted). Role management follows a separate, stricter
rule set: who may grant, change or revoke which role.

Pure Python logic - no FastAPI imports, no database access.
"""

from typing import Any, Iterable, List, Set

from synergyhub.models import Permission, Role, coerce_role


# ============================================================================
# Role to Permissions Mapping
# ============================================================================

# Union of two grant tables: the administration and task permissions
# (manage_admins through view_audit_logs, view_task through write_comments)
# and the workspace permissions that guard clients, projects, tasks, messages
# and uploads. Each role holds everything either table grants it, plus
# read_comments for Client so it can read the comments on tasks it can view.
DEFAULT_ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.SuperAdmin: set(Permission),
    Role.Admin: {
        # Everything except administering admins and the permission model itself
        Permission.MANAGE_MEMBERS,
        Permission.VIEW_AUDIT_LOGS,
        Permission.MANAGE_CLIENTS,
        Permission.MANAGE_PROJECTS,
        Permission.MANAGE_TASKS,
        Permission.VIEW_TASK,
        Permission.EDIT_TASK,
        Permission.DELETE_TASK,
        Permission.ASSIGN_TASK,
        Permission.READ_COMMENTS,
        Permission.WRITE_COMMENTS,
        Permission.MANAGE_MESSAGES,
        Permission.SEND_MESSAGES,
        Permission.UPLOAD_FILES,
    },
    Role.Member: {
        Permission.VIEW_TASK,
        Permission.EDIT_TASK,
        Permission.READ_COMMENTS,
        Permission.WRITE_COMMENTS,
        Permission.SEND_MESSAGES,
        Permission.UPLOAD_FILES,
    },
    Role.Client: {
        Permission.VIEW_TASK,
        Permission.READ_COMMENTS,
        Permission.SEND_MESSAGES,
        Permission.UPLOAD_FILES,
    },
}


def permissions_for_role(role: Any) -> Set[str]:
    """
    Permission strings granted by a role.

    Returns an empty set for unknown roles.
    """
    parsed = coerce_role(role)
    if parsed is None:
        return set()
    return {p.value for p in DEFAULT_ROLE_PERMISSIONS[parsed]}


def sorted_permissions(role: Any) -> List[str]:
    """Stable list form for storage on the user record and API responses."""
    return sorted(permissions_for_role(role))


def has_permissions(role: Any, required: Iterable[Any]) -> bool:
    """
    Check that a role's permission set is a superset of `required`.

    Args:
        role: The caller's role in the business (None when not a member)
        required: Permission enums or strings

    Returns:
        True only if every required permission is granted. Unknown or missing
        roles are denied.
    """
    granted = permissions_for_role(role)
    if not granted:
        return False
    needed = {p.value if isinstance(p, Permission) else str(p) for p in required}
    return needed <= granted


# ============================================================================
# Role Management
# ============================================================================

MANAGEABLE_ROLES = {
    Role.SuperAdmin: {Role.Admin, Role.Member, Role.Client},
    Role.Admin: {Role.Member, Role.Client},
}


def can_manage_role(actor_role: Any, target_role: Any) -> bool:
    """
    Whether an actor holding `actor_role` may grant, change or revoke `target_role`.

    SuperAdmin manages every role except SuperAdmin; Admin manages Member
    and Client; everyone else manages nothing. Independent of quota state.
    """
    actor = coerce_role(actor_role)
    target = coerce_role(target_role)
    if actor is None or target is None:
        return False
    return target in MANAGEABLE_ROLES.get(actor, set())
