# Overview: Pytest coverage for the branch visibility rule and permission mapping.

from types import SimpleNamespace

import pytest
from backoffice.extensions import db
from backoffice.models import Product
from backoffice.permissions import DEFAULT_ROLE_PERMISSIONS, get_all_permission_codes
from backoffice.services import permission_service
from backoffice.services.permission_service import PermissionDeniedError
from backoffice.services.visibility import (
    is_head_office,
    visible,
    filter_visible,
    scope_query,
    resolve_branch_filter,
)


def _user(role, branch_id=None):
    return SimpleNamespace(role=role, branch_id=branch_id, is_deleted=False)


class TestVisibleRule:

    @pytest.mark.parametrize("role", ["admin", "general_manager", "it_support"])
    def test_head_office_sees_everything(self, role):
        user = _user(role)
        assert is_head_office(user)
        assert visible(user, {"branch_id": 7})
        assert visible(user, {"branch_id": None})

    def test_branch_user_sees_own_branch_only(self):
        user = _user("supervisor", 3)
        assert visible(user, {"branch_id": 3})
        assert not visible(user, {"branch_id": 4})
        assert not visible(user, {"branch_id": None})

    def test_branchless_branch_user_sees_nothing(self):
        user = _user("employee", None)
        assert not visible(user, {"branch_id": None})
        assert not visible(user, {"branch_id": 1})

    def test_filter_visible_on_objects(self):
        records = [SimpleNamespace(branch_id=1), SimpleNamespace(branch_id=2), SimpleNamespace(branch_id=1)]
        assert len(filter_visible(_user("branch_manager", 1), records)) == 2
        assert len(filter_visible(_user("admin"), records)) == 3

    def test_resolve_branch_filter(self):
        assert resolve_branch_filter(_user("admin"), 5) == 5
        assert resolve_branch_filter(_user("admin"), None) is None
        assert resolve_branch_filter(_user("supervisor", 2), 5) == 2


class TestScopeQuery:

    def test_sql_matches_in_memory_rule(self, db_session, product_a, product_b, manager_a, admin):
        from conftest import make_user
        floater = make_user("floater", "employee")

        for user in (manager_a, admin, floater):
            in_sql = scope_query(db.session.query(Product), Product, user).all()
            in_memory = filter_visible(user, db.session.query(Product).all())
            assert {p.id for p in in_sql} == {p.id for p in in_memory}

        assert scope_query(db.session.query(Product), Product, floater).all() == []


class TestRolePermissions:

    def test_head_office_has_everything(self):
        for role in ("admin", "general_manager", "it_support"):
            assert set(DEFAULT_ROLE_PERMISSIONS[role]) == set(get_all_permission_codes())

    def test_branch_manager_cannot_manage_staff_or_branches(self):
        perms = set(DEFAULT_ROLE_PERMISSIONS["branch_manager"])
        assert "MANAGE_STAFF" not in perms
        assert "MANAGE_BRANCHES" not in perms
        assert "PAY_STAFF" in perms

    def test_require_permission(self, app):
        employee = _user("employee", 1)
        permission_service.require_permission(employee, "CREATE_SALE")
        with pytest.raises(PermissionDeniedError):
            permission_service.require_permission(employee, "VIEW_TREASURY")

    def test_unknown_role_has_nothing(self, app):
        assert permission_service.get_user_permissions(_user("visitor", 1)) == set()
