"""
Authentication and authorization tests.

Verifies:
- Unauthenticated requests return 401
- SELLER role denied employee management (403)
- Role ranking SELLER < MANAGER < ADMIN
- Password change and deactivation revoke sessions
"""

import pytest

from conftest import PASSWORD, auth_headers, get_auth_token
from pdv.permissions import can


# =============================================================================
# CAPABILITY CHECK
# =============================================================================


class TestCan:

    @pytest.mark.parametrize(
        "actor,required,expected",
        [
            ("SELLER", "SELLER", True),
            ("SELLER", "MANAGER", False),
            ("MANAGER", "SELLER", True),
            ("MANAGER", "ADMIN", False),
            ("ADMIN", "MANAGER", True),
            (None, "SELLER", False),
        ],
    )
    def test_rank(self, actor, required, expected):
        assert can(actor, required) is expected

    def test_unknown_required_role(self):
        with pytest.raises(ValueError):
            can("ADMIN", "OWNER")


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_employee(self, client, seller):
        resp = client.post("/api/auth/login", json={"login": "seller", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["token"]
        assert body["employee"]["login"] == "seller"
        assert "password_hash" not in body["employee"]

    def test_wrong_password(self, client, seller):
        resp = client.post("/api/auth/login", json={"login": "seller", "password": "nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "unauthenticated"

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/login", json={"login": "seller"})
        assert resp.status_code == 400
        assert resp.get_json()["fields"][0]["field"] == "password"

    def test_me(self, client, seller_headers):
        resp = client.get("/api/auth/me", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["employee"]["role"] == "SELLER"

    def test_logout_revokes_token(self, client, seller_headers):
        assert client.post("/api/auth/logout", headers=seller_headers).status_code == 200
        assert client.get("/api/auth/me", headers=seller_headers).status_code == 401


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/employees"),
            ("GET", "/api/products"),
            ("POST", "/api/inventory/adjust"),
            ("POST", "/api/sales"),
            ("GET", "/api/registers/current"),
            ("GET", "/api/tabs"),
            ("GET", "/api/returns"),
            ("GET", "/api/customers"),
            ("GET", "/api/payments"),
            ("GET", "/api/imports/history"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/sync/pending"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client):
        resp = client.get("/api/products", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}


# =============================================================================
# SELLER DENIED EMPLOYEE MANAGEMENT (403)
# =============================================================================


class TestSellerDenied:

    def test_cannot_list_employees(self, client, seller_headers):
        resp = client.get("/api/employees", headers=seller_headers)
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "forbidden"

    def test_cannot_create_employee(self, client, seller_headers):
        resp = client.post(
            "/api/employees",
            json={"name": "X", "login": "xxx", "password": "1234"},
            headers=seller_headers,
        )
        assert resp.status_code == 403

    def test_cannot_view_other_employee(self, client, seller_headers, manager):
        resp = client.get(f"/api/employees/{manager.id}", headers=seller_headers)
        assert resp.status_code == 403

    def test_can_view_self(self, client, seller_headers, seller):
        resp = client.get(f"/api/employees/{seller.id}", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["employee"]["stats"] == {"sale_count": 0, "sales_total_cents": 0}

    def test_cannot_change_own_role(self, client, seller_headers, seller):
        resp = client.put(f"/api/employees/{seller.id}", json={"role": "ADMIN"}, headers=seller_headers)
        assert resp.status_code == 400

    def test_can_rename_self(self, client, seller_headers, seller):
        resp = client.put(f"/api/employees/{seller.id}", json={"name": "Samuel"}, headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["employee"]["name"] == "Samuel"

    def test_manager_cannot_create_employee(self, client, manager_headers):
        resp = client.post(
            "/api/employees",
            json={"name": "X", "login": "xxx", "password": "1234"},
            headers=manager_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# ADMIN EMPLOYEE MANAGEMENT
# =============================================================================


class TestAdminManagement:

    def test_create_employee(self, client, admin_headers):
        resp = client.post(
            "/api/employees",
            json={"name": "New Seller", "login": "newbie", "password": "1234", "role": "SELLER"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["employee"]["status"] == "ACTIVE"
        assert get_auth_token(client, "newbie", "1234")

    def test_duplicate_login(self, client, admin_headers, seller):
        resp = client.post(
            "/api/employees",
            json={"name": "Dup", "login": "seller", "password": "1234"},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_short_password(self, client, admin_headers):
        resp = client.post(
            "/api/employees",
            json={"name": "Short", "login": "short", "password": "123"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_cannot_deactivate_self(self, client, admin_headers, admin):
        resp = client.delete(f"/api/employees/{admin.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_deactivation_revokes_sessions(self, client, admin_headers, seller, seller_headers):
        resp = client.delete(f"/api/employees/{seller.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=seller_headers).status_code == 401
        resp = client.post("/api/auth/login", json={"login": "seller", "password": PASSWORD})
        assert resp.status_code == 401


class TestPasswordChange:

    def test_self_change_requires_current_password(self, client, seller_headers, seller):
        resp = client.post(
            f"/api/employees/{seller.id}/password",
            json={"new_password": "abcd", "current_password": "wrong"},
            headers=seller_headers,
        )
        assert resp.status_code == 400

    def test_self_change_revokes_sessions(self, client, seller_headers, seller):
        resp = client.post(
            f"/api/employees/{seller.id}/password",
            json={"new_password": "abcd", "current_password": PASSWORD},
            headers=seller_headers,
        )
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=seller_headers).status_code == 401
        assert get_auth_token(client, "seller", "abcd")

    def test_admin_reset_without_current(self, client, admin_headers, seller):
        resp = client.post(
            f"/api/employees/{seller.id}/password",
            json={"new_password": "reset1"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert get_auth_token(client, "seller", "reset1")

    def test_seller_cannot_reset_others(self, client, seller_headers, manager):
        resp = client.post(
            f"/api/employees/{manager.id}/password",
            json={"new_password": "reset1"},
            headers=seller_headers,
        )
        assert resp.status_code == 403
