"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Employee role denied back-office operations (403)
- Branch users cannot reach other branches' records (404, not 403)
- Head-office roles can perform privileged operations
"""

import pytest

from conftest import get_auth_token, auth_headers, PASSWORD


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/branches"),
            ("GET", "/api/staff"),
            ("GET", "/api/products"),
            ("GET", "/api/sales/invoices"),
            ("GET", "/api/sales/expenses"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/suppliers/purchases"),
            ("GET", "/api/treasury/balance"),
            ("GET", "/api/treasury/logs"),
            ("GET", "/api/dashboard"),
            ("GET", "/api/activity"),
            ("GET", "/api/correspondence/messages"),
            ("POST", "/api/treasury/entries"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_permissions(self, client, employee_a):
        resp = client.post("/api/auth/login", json={"username": "employee_a", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.json
        assert body["token"]
        assert body["user"]["username"] == "employee_a"
        assert "CREATE_SALE" in body["permissions"]
        assert "MANAGE_STAFF" not in body["permissions"]

    def test_wrong_password(self, client, employee_a):
        resp = client.post("/api/auth/login", json={"username": "employee_a", "password": "nope"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "employee_a"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, employee_a):
        token = get_auth_token(client, "employee_a")
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 200
        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


# =============================================================================
# EMPLOYEE DENIED BACK-OFFICE OPERATIONS (403)
# =============================================================================


class TestEmployeeDenied:
    """Employee role can sell but not manage."""

    @pytest.mark.parametrize(
        "method,path,permission",
        [
            ("GET", "/api/dashboard", "VIEW_DASHBOARD"),
            ("GET", "/api/suppliers", "VIEW_SUPPLIERS"),
            ("POST", "/api/suppliers", "MANAGE_SUPPLIERS"),
            ("GET", "/api/treasury/balance", "VIEW_TREASURY"),
            ("POST", "/api/treasury/entries", "MANAGE_TREASURY"),
            ("GET", "/api/staff", "MANAGE_STAFF"),
            ("POST", "/api/branches", "MANAGE_BRANCHES"),
            ("POST", "/api/sales/expenses", "MANAGE_EXPENSES"),
            ("POST", "/api/products", "MANAGE_PRODUCTS"),
            ("GET", "/api/activity", "VIEW_ACTIVITY"),
        ],
    )
    def test_denied(self, client, employee_headers, method, path, permission):
        resp = getattr(client, method.lower())(path, json={}, headers=employee_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == permission

    def test_can_list_products(self, client, employee_headers, product_a):
        resp = client.get("/api/products", headers=employee_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["items"]] == [product_a.id]


class TestBranchManagerLimits:

    def test_cannot_manage_staff_or_branches(self, client, manager_headers):
        assert client.post("/api/staff", json={}, headers=manager_headers).status_code == 403
        assert client.post("/api/branches", json={}, headers=manager_headers).status_code == 403

    def test_can_pay_and_view_treasury(self, client, manager_headers):
        assert client.get("/api/treasury/balance", headers=manager_headers).status_code == 200
        assert client.get("/api/staff/payments", headers=manager_headers).status_code == 200


# =============================================================================
# BRANCH ISOLATION
# =============================================================================


class TestBranchIsolation:
    """Records from another branch look like they do not exist."""

    def test_other_branch_product_is_404(self, client, manager_headers, product_b):
        resp = client.get(f"/api/products/{product_b.id}", headers=manager_headers)
        assert resp.status_code == 404

    def test_other_branch_is_404(self, client, manager_headers, branch_b):
        resp = client.get(f"/api/branches/{branch_b.id}", headers=manager_headers)
        assert resp.status_code == 404

    def test_own_branch_visible(self, client, manager_headers, branch_a):
        resp = client.get(f"/api/branches/{branch_a.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["id"] == branch_a.id

    def test_product_list_excludes_other_branch(self, client, manager_headers, product_a, product_b):
        resp = client.get("/api/products", headers=manager_headers)
        assert [p["id"] for p in resp.json["items"]] == [product_a.id]


# =============================================================================
# HEAD OFFICE
# =============================================================================


class TestHeadOffice:

    def test_admin_sees_all_products(self, client, admin_headers, product_a, product_b):
        resp = client.get("/api/products", headers=admin_headers)
        assert {p["id"] for p in resp.json["items"]} == {product_a.id, product_b.id}

    def test_admin_creates_branch(self, client, admin_headers):
        resp = client.post("/api/branches", json={"name": "Harbour"}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["name"] == "Harbour"

    def test_admin_creates_staff_with_temporary_password(self, client, admin_headers, branch_a):
        resp = client.post(
            "/api/staff",
            json={"role": "employee", "full_name": "New Hire", "branch_id": branch_a.id},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        username = resp.json["user"]["username"]
        password = resp.json["temporary_password"]
        assert get_auth_token(client, username, password)

    def test_branch_with_staff_cannot_be_deleted(self, client, admin_headers, branch_a, employee_a):
        resp = client.delete(f"/api/branches/{branch_a.id}", json={"reason": "closing"}, headers=admin_headers)
        assert resp.status_code == 409
