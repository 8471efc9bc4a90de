"""
Authorization tests for the Uniform Palace back office.

Verifies:
- Unauthenticated requests return 401
- Staff without a resource's permission flag get 403
- Ownership (assignee/creator) grants access to a record without the flag
- Missing records answer 404 before any access decision
- Only holders of the users permission manage accounts
"""

import pytest

from uniform_palace.services import inquiry_service, session_service
from conftest import auth_headers, get_auth_token, PASSWORD


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/users"),
            ("GET", "/api/admin/dashboard"),
            ("GET", "/api/admin/reports/sales"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers"),
            ("GET", "/api/customers/1"),
            ("GET", "/api/products"),
            ("PUT", "/api/products/1/stock"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("PUT", "/api/orders/1/status"),
            ("GET", "/api/inquiries"),
            ("POST", "/api/inquiries/1/convert-to-customer"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/customers", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_deactivated_user_token_rejected(self, client, staff_user, staff_headers, db_session):
        staff_user.is_active = False
        db_session.commit()

        resp = client.get("/api/customers", headers=staff_headers)
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, staff_headers):
        assert client.post("/api/auth/logout", headers=staff_headers).status_code == 200
        assert client.get("/api/auth/me", headers=staff_headers).status_code == 401

    def test_self_registration_disabled(self, client, db_session):
        resp = client.post("/api/auth/register", json={"username": "x"})
        assert resp.status_code == 403


class TestLogin:

    def test_login_by_email(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": staff_user.email, "password": PASSWORD})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["token"]
        assert data["permissions"]["customers"] is True
        assert data["permissions"]["users"] is False

    def test_wrong_password(self, client, staff_user):
        assert get_auth_token(client, staff_user.username, "Wrong123!") is None

    def test_session_token_stored_hashed(self, staff_user, db_session):
        session, token = session_service.create_session(staff_user.id)
        assert session.token_hash != token
        assert session_service.validate_session(token).user.id == staff_user.id


# =============================================================================
# MISSING PERMISSION FLAG (403)
# =============================================================================


class TestRestrictedStaffDenied:
    """Staff with only the inquiries flag cannot reach the other resources."""

    @pytest.mark.parametrize(
        "path",
        [
            "/api/customers",
            "/api/customers/stats/overview",
            "/api/products",
            "/api/products/low-stock",
            "/api/orders",
            "/api/orders/overdue",
            "/api/admin/dashboard",
            "/api/admin/reports/customers",
            "/api/admin/users",
        ],
    )
    def test_collection_denied(self, client, restricted_headers, path):
        resp = client.get(path, headers=restricted_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"]

    def test_can_list_inquiries(self, client, restricted_headers):
        resp = client.get("/api/inquiries", headers=restricted_headers)
        assert resp.status_code == 200

    def test_cannot_create_customer(self, client, restricted_headers):
        resp = client.post(
            "/api/customers",
            json={"name": "Evil Corp", "email": "evil@example.com"},
            headers=restricted_headers,
        )
        assert resp.status_code == 403

    def test_cannot_read_foreign_customer(self, client, restricted_headers, customer):
        resp = client.get(f"/api/customers/{customer.id}", headers=restricted_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "customers"

    def test_missing_record_is_404_not_403(self, client, restricted_headers):
        resp = client.get("/api/customers/999999", headers=restricted_headers)
        assert resp.status_code == 404

    def test_staff_cannot_manage_users(self, client, staff_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "x", "email": "x@x.com", "password": "P@ssw0rd123!", "full_name": "X"},
            headers=staff_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# OWNERSHIP GRANTS RECORD ACCESS
# =============================================================================


class TestOwnership:

    def test_assignee_reads_customer_without_flag(self, client, restricted_user, restricted_headers, customer, db_session):
        customer.assigned_to_user_id = restricted_user.id
        db_session.commit()

        resp = client.get(f"/api/customers/{customer.id}", headers=restricted_headers)
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["id"] == customer.id

    def test_flag_grants_access_to_any_record(self, client, admin_user, staff_headers, customer, db_session):
        customer.assigned_to_user_id = admin_user.id
        db_session.commit()

        resp = client.get(f"/api/customers/{customer.id}", headers=staff_headers)
        assert resp.status_code == 200

    def test_inquiries_flag_is_enough_to_convert(self, client, restricted_user, restricted_headers, inquiry_form, db_session):
        inquiry = inquiry_service.submit_inquiry(patch=inquiry_form)
        inquiry.assigned_to_user_id = restricted_user.id
        db_session.commit()

        resp = client.post(f"/api/inquiries/{inquiry.id}/convert-to-customer", json={}, headers=restricted_headers)
        assert resp.status_code == 201


# =============================================================================
# ADMIN USER MANAGEMENT
# =============================================================================


class TestAdminUserManagement:

    def test_admin_lists_users(self, client, admin_headers, staff_user):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200
        usernames = {u["username"] for u in resp.get_json()["items"]}
        assert {"admin", "sales_staff"} <= usernames

    def test_create_user_with_weak_password(self, client, admin_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "newbie", "email": "newbie@x.com", "password": "password", "full_name": "New"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_create_duplicate_user(self, client, admin_headers, staff_user):
        resp = client.post(
            "/api/admin/users",
            json={
                "username": staff_user.username,
                "email": "other@x.com",
                "password": "P@ssw0rd123!",
                "full_name": "Dup",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_duplicate_user_past_precheck_is_conflict(self, client, admin_headers, staff_user, monkeypatch):
        from uniform_palace.services import auth_service

        monkeypatch.setattr(auth_service, "_ensure_identity_free", lambda *a, **k: None)
        resp = client.post(
            "/api/admin/users",
            json={
                "username": staff_user.username,
                "email": "other@x.com",
                "password": "P@ssw0rd123!",
                "full_name": "Dup",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Username or email already exists"

    def test_users_flag_grants_management(self, client, admin_headers, staff_user):
        resp = client.put(
            f"/api/admin/users/{staff_user.id}",
            json={"permissions": {"users": True}},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        headers = auth_headers(get_auth_token(client, staff_user.username))
        assert client.get("/api/admin/users", headers=headers).status_code == 200

    def test_deactivate_revokes_sessions(self, client, admin_headers, staff_user, staff_headers):
        resp = client.post(f"/api/admin/users/{staff_user.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["is_active"] is False

        assert client.get("/api/auth/me", headers=staff_headers).status_code == 401

    def test_reset_password(self, client, admin_headers, staff_user):
        resp = client.post(
            f"/api/admin/users/{staff_user.id}/reset-password",
            json={"new_password": "N3w-Secret!"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert get_auth_token(client, staff_user.username, "N3w-Secret!")
        assert get_auth_token(client, staff_user.username, PASSWORD) is None


# =============================================================================
# PUBLIC ENDPOINTS (NO AUTH REQUIRED)
# =============================================================================


class TestPublicEndpoints:
    """System health and version endpoints are public."""

    def test_health(self, client, db_session):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_version(self, client, db_session):
        resp = client.get("/api/system/version")
        assert resp.status_code == 200
        assert resp.get_json()["api_version"]
