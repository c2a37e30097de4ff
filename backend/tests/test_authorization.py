"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Operators are denied uploads and TSV reports (403)
- Supervisors can use them
- Signup assigns the role from configuration, login/logout round trip
"""

import io

import pytest

from posoffice.services import session_service
from posoffice.models import SessionToken
from conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/clients"),
            ("POST", "/api/clients"),
            ("GET", "/api/products"),
            ("POST", "/api/products/upload"),
            ("GET", "/api/inventory"),
            ("PUT", "/api/inventory/1"),
            ("POST", "/api/inventory/upload"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("POST", "/api/orders/1/invoice"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/reports/inventory"),
            ("GET", "/api/reports/summary"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/clients", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"


# =============================================================================
# OPERATOR DENIED SUPERVISOR OPERATIONS (403)
# =============================================================================


class TestOperatorDenied:
    @pytest.mark.parametrize("path", ["/api/reports/sales?start=2024-01-01&end=2024-01-02", "/api/reports/inventory"])
    def test_cannot_pull_tsv_reports(self, client, operator_headers, path):
        assert client.get(path, headers=operator_headers).status_code == 403

    def test_cannot_upload_inventory(self, client, operator_headers):
        resp = client.post(
            "/api/inventory/upload",
            data={"file": (io.BytesIO(b"barcode\tquantity\n"), "s.tsv")},
            headers=operator_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 403

    def test_can_read_dashboard(self, client, operator_headers):
        assert client.get("/api/reports/summary", headers=operator_headers).status_code == 200


class TestSupervisorAllowed:
    def test_sales_report_download(self, client, supervisor_headers):
        resp = client.get("/api/reports/sales?start=2024-01-01&end=2024-01-31", headers=supervisor_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "text/tab-separated-values"
        assert "sales-report-2024-01-01-to-2024-01-31.tsv" in resp.headers["Content-Disposition"]
        assert resp.data.decode("utf-8").startswith("Sales Report Summary\n")

    def test_sales_report_bad_range(self, client, supervisor_headers):
        resp = client.get("/api/reports/sales?start=2024-02-01&end=2024-01-01", headers=supervisor_headers)
        assert resp.status_code == 400

    def test_inventory_report_download(self, client, supervisor_headers):
        resp = client.get("/api/reports/inventory", headers=supervisor_headers)
        assert resp.status_code == 200
        assert 'filename="inventory-report.tsv"' in resp.headers["Content-Disposition"]


# =============================================================================
# SIGNUP / LOGIN / LOGOUT
# =============================================================================


class TestAuthFlow:
    def test_signup_role_from_config(self, client, db_session):
        resp = client.post("/api/auth/signup", json={"email": "Boss@PosOffice.local", "password": PASSWORD})
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "SUPERVISOR"

        resp = client.post("/api/auth/signup", json={"email": "clerk@posoffice.local", "password": PASSWORD})
        assert resp.json["user"]["role"] == "OPERATOR"

    def test_signup_duplicate_and_weak_password(self, client, db_session):
        client.post("/api/auth/signup", json={"email": "a@posoffice.local", "password": PASSWORD})
        resp = client.post("/api/auth/signup", json={"email": "A@posoffice.local", "password": PASSWORD})
        assert resp.status_code == 409

        resp = client.post("/api/auth/signup", json={"email": "b@posoffice.local", "password": "short"})
        assert resp.status_code == 400

    def test_wrong_password(self, client, operator):
        resp = client.post("/api/auth/login", json={"email": operator.email, "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid email or password"

    def test_login_me_logout(self, client, operator):
        token = get_auth_token(client, operator.email, PASSWORD)
        headers = auth_headers(token)

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.json["user"]["email"] == "operator@test.local"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_cleanup_removes_revoked_sessions(self, client, db_session, operator):
        token = get_auth_token(client, operator.email, PASSWORD)
        session_service.revoke_session(token)
        assert session_service.cleanup_expired_sessions() == 1
        assert db_session.query(SessionToken).count() == 0
