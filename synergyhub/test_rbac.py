"""
synergyhub/test_rbac.py

Tests for role permissions, role management and quota reporting.

Run:
    pytest synergyhub/test_rbac.py -v
"""

import pytest

from synergyhub.membership import add_member
from synergyhub.models import Business, Permission, Role
from synergyhub.quotas import (
    ROLE_CEILINGS,
    can_add_member_with_role,
    get_member_quotas,
    remaining_seats,
)
from synergyhub.rbac import (
    can_manage_role,
    has_permissions,
    permissions_for_role,
    sorted_permissions,
)


@pytest.fixture
def business():
    b = Business.create_for_owner(1, "Acme")
    b.id = 7
    return b


class TestCanManageRole:
    def test_admin_cannot_manage_super_admin(self):
        assert can_manage_role(Role.Admin, Role.SuperAdmin) is False

    def test_admin_manages_member(self):
        assert can_manage_role(Role.Admin, Role.Member) is True

    def test_super_admin_cannot_manage_super_admin(self):
        assert can_manage_role(Role.SuperAdmin, Role.SuperAdmin) is False

    def test_full_table(self):
        expected = {
            Role.SuperAdmin: {Role.Admin, Role.Member, Role.Client},
            Role.Admin: {Role.Member, Role.Client},
            Role.Member: set(),
            Role.Client: set(),
        }
        for actor in Role:
            for target in Role:
                assert can_manage_role(actor, target) is (target in expected[actor]), (actor, target)

    def test_strings_and_unknown_roles(self):
        assert can_manage_role("SuperAdmin", "Admin") is True
        assert can_manage_role("Owner", "Member") is False
        assert can_manage_role("Admin", None) is False


class TestPermissions:
    def test_super_admin_has_everything(self):
        assert permissions_for_role(Role.SuperAdmin) == {p.value for p in Permission}

    def test_admin_lacks_admin_management(self):
        perms = permissions_for_role(Role.Admin)
        assert "manage_members" in perms
        assert "view_audit_logs" in perms
        for withheld in ("manage_admins", "manage_roles", "manage_permissions"):
            assert withheld not in perms

    def test_admin_holds_both_tables(self):
        assert permissions_for_role(Role.Admin) == {
            "manage_members", "view_audit_logs",
            "view_task", "edit_task", "delete_task", "assign_task", "read_comments", "write_comments",
            "manage_clients", "manage_projects", "manage_tasks", "manage_messages", "send_messages", "upload_files",
        }

    def test_member_and_client(self):
        assert permissions_for_role(Role.Member) == {
            "view_task", "edit_task", "read_comments", "write_comments", "send_messages", "upload_files",
        }
        assert permissions_for_role(Role.Client) == {
            "view_task", "read_comments", "send_messages", "upload_files",
        }

    def test_superset_check(self):
        assert has_permissions(Role.Member, ["view_task", "edit_task"])
        assert not has_permissions(Role.Member, ["view_task", "delete_task"])
        assert has_permissions(Role.Admin, [Permission.MANAGE_MEMBERS])
        assert has_permissions(Role.Client, [])

    def test_unknown_role_denied(self):
        assert permissions_for_role("Guest") == set()
        assert not has_permissions(None, [])
        assert not has_permissions("Guest", ["view_task"])

    def test_sorted_permissions_is_stable(self):
        perms = sorted_permissions(Role.Client)
        assert perms == sorted(perms)


class TestQuotas:
    def test_ceilings(self):
        assert ROLE_CEILINGS == {Role.SuperAdmin: 5, Role.Admin: 20, Role.Member: 1000, Role.Client: None}

    def test_can_add_is_pure(self, business):
        before = business.member_counts.to_dict()
        assert can_add_member_with_role(business, Role.Admin)
        assert business.member_counts.to_dict() == before

    def test_can_add_at_ceiling(self, business):
        business.member_counts.super_admin = 5
        assert not can_add_member_with_role(business, Role.SuperAdmin)
        business.member_counts.client = 10 ** 6
        assert can_add_member_with_role(business, Role.Client)

    def test_unknown_role_cannot_be_added(self, business):
        assert not can_add_member_with_role(business, "Owner")

    def test_remaining_seats(self, business):
        assert remaining_seats(business, Role.SuperAdmin) == 4
        assert remaining_seats(business, Role.Client) is None

    def test_member_quotas_report(self, business):
        add_member(business, 2, Role.Admin)
        add_member(business, 3, Role.Client)

        assert get_member_quotas(business) == {
            "super_admin": {"current": 1, "limit": 5, "remaining": 4},
            "admin": {"current": 1, "limit": 20, "remaining": 19},
            "member": {"current": 0, "limit": 1000, "remaining": 1000},
            "client": {"current": 1, "limit": None, "remaining": None},
        }
