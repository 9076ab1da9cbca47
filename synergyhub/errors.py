"""
synergyhub/errors.py

Error taxonomy for membership operations.

Every error here is a client-input/state error: the caller has to change its
request (different role, different member) rather than retry. The HTTP layer
maps them to JSON responses via the handler registered in main.py.
"""

from __future__ import annotations


class MembershipError(Exception):
    """Base class; carries the HTTP status and a stable machine-readable code."""

    status_code = 400
    code = "membership_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class QuotaExceededError(MembershipError):
    code = "quota_exceeded"

    def __init__(self, role: str, limit: int):
        super().__init__(f"Maximum number of {role} members reached ({limit})")
        self.role = role
        self.limit = limit


class DuplicateMemberError(MembershipError):
    code = "duplicate_member"

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} is already a member of this business")
        self.user_id = user_id


class MemberNotFoundError(MembershipError):
    status_code = 404
    code = "member_not_found"

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} is not a member of this business")
        self.user_id = user_id


class LastSuperAdminError(MembershipError):
    code = "last_super_admin"

    def __init__(self):
        super().__init__("A business must keep at least one SuperAdmin")


class InvalidRoleError(MembershipError):
    code = "invalid_role"

    def __init__(self, role):
        super().__init__(f"Invalid role: {role!r}")
        self.role = role


class BusinessNotFoundError(MembershipError):
    status_code = 404
    code = "business_not_found"

    def __init__(self, business_id: int):
        super().__init__("Business not found")
        self.business_id = business_id


class UserNotFoundError(MembershipError):
    status_code = 404
    code = "user_not_found"

    def __init__(self, user_id):
        super().__init__("User not found")
        self.user_id = user_id


class NotBusinessOwnerError(MembershipError):
    status_code = 403
    code = "not_business_owner"

    def __init__(self):
        super().__init__("Only the business owner can do this")


class ConcurrentModificationError(MembershipError):
    """Raised when the optimistic-concurrency retry budget is exhausted."""

    status_code = 409
    code = "concurrent_modification"

    def __init__(self, business_id: int, attempts: int):
        super().__init__(
            f"Business {business_id} was modified concurrently; gave up after {attempts} attempts"
        )
        self.business_id = business_id
        self.attempts = attempts


class InvitationError(MembershipError):
    code = "invitation_invalid"


class InvitationNotFoundError(InvitationError):
    status_code = 404
    code = "invitation_not_found"

    def __init__(self):
        super().__init__("Invitation not found")
