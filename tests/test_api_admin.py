"""HTTP tests for user administration, audit log endpoints, health and CLI."""

import pytest

from conftest import PASSWORD, audit_rows, fetch_user


def auth_headers(client, username, ip="10.9.9.9"):
    resp = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": PASSWORD},
        headers={"X-Forwarded-For": ip},
    )
    assert resp.status_code == 200, resp.get_json()
    return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}


@pytest.fixture
def admin_headers(client, make_user):
    make_user("root", roles=["ADMIN"])
    return auth_headers(client, "root")


class TestAccessControl:
    def test_viewer_cannot_list_users(self, client, make_user):
        make_user("val", roles=["VIEWER"])

        resp = client.get("/api/v1/users", headers=auth_headers(client, "val"))

        assert resp.status_code == 403

    def test_anonymous_cannot_list_users(self, client):
        assert client.get("/api/v1/users").status_code == 401

    def test_me(self, client, make_user):
        make_user("val", roles=["VIEWER"])

        resp = client.get("/api/v1/me", headers=auth_headers(client, "val"))

        assert resp.status_code == 200
        assert resp.get_json()["data"]["username"] == "val"


class TestUsers:
    def test_create_and_list(self, client, admin_headers):
        resp = client.post(
            "/api/v1/users",
            json={
                "username": "olga",
                "email": "Olga@Example.com",
                "password": "Operator-Pass-1",
                "roles": ["OPERATOR"],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["email"] == "olga@example.com"
        assert "password" not in resp.get_json()["data"]

        listing = client.get("/api/v1/users?sort=username", headers=admin_headers).get_json()
        assert [u["username"] for u in listing["data"]] == ["olga", "root"]
        assert listing["meta"]["total"] == 2

        by_role = client.get("/api/v1/users?role=OPERATOR", headers=admin_headers).get_json()
        assert [u["username"] for u in by_role["data"]] == ["olga"]

    def test_duplicate_username_is_409(self, client, admin_headers, make_user):
        make_user("olga")

        resp = client.post(
            "/api/v1/users",
            json={"username": "olga", "email": "new@example.com", "password": "Operator-Pass-1", "roles": ["VIEWER"]},
            headers=admin_headers,
        )

        assert resp.status_code == 409

    def test_invalid_role_is_422(self, client, admin_headers):
        resp = client.post(
            "/api/v1/users",
            json={"username": "olga", "email": "o@example.com", "password": "Operator-Pass-1", "roles": ["GOD"]},
            headers=admin_headers,
        )

        assert resp.status_code == 422

    def test_disable_user_revokes_sessions(self, client, admin_headers, make_user):
        olga_id = make_user("olga").id
        login = client.post(
            "/api/v1/auth/login",
            json={"username": "olga", "password": PASSWORD},
            headers={"X-Forwarded-For": "10.3.3.3"},
        ).get_json()

        resp = client.put(f"/api/v1/users/{olga_id}", json={"enabled": False}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["enabled"] is False
        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert refreshed.status_code == 400

    def test_unlock_user(self, client, admin_headers, make_user):
        olga_id = make_user("olga").id
        for n in range(5):
            client.post(
                "/api/v1/auth/login",
                json={"username": "olga", "password": "bad-password"},
                headers={"X-Forwarded-For": f"10.4.4.{n}"},
            )
        assert fetch_user("olga").locked_until is not None

        resp = client.post(f"/api/v1/users/{olga_id}/unlock", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["locked"] is False
        assert fetch_user("olga").failed_login_attempts == 0

    def test_delete_user(self, client, admin_headers, make_user):
        olga_id = make_user("olga").id

        resp = client.delete(f"/api/v1/users/{olga_id}", headers=admin_headers)

        assert resp.status_code == 204
        assert client.get(f"/api/v1/users/{olga_id}", headers=admin_headers).status_code == 404

    def test_cannot_delete_self(self, client, admin_headers):
        me = client.get("/api/v1/me", headers=admin_headers).get_json()["data"]

        assert client.delete(f"/api/v1/users/{me['id']}", headers=admin_headers).status_code == 409

    def test_set_roles(self, client, admin_headers, make_user):
        olga_id = make_user("olga", roles=["VIEWER"]).id

        resp = client.post(f"/api/v1/users/{olga_id}/roles", json={"roles": ["OPERATOR", "VIEWER"]}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["roles"] == ["OPERATOR", "VIEWER"]

    def test_user_changes_are_audited_with_admin_actor(self, client, app, admin_headers):
        client.post(
            "/api/v1/users",
            json={"username": "olga", "email": "o@example.com", "password": "Operator-Pass-1", "roles": ["VIEWER"]},
            headers=admin_headers,
        )

        rows = audit_rows(app.extensions["security"].audit, action="CREATE")
        assert [(r.username, r.details) for r in rows] == [("root", "Created user: olga")]


class TestAuditLogs:
    def test_list_filter_and_recent(self, client, app, admin_headers, make_user):
        make_user("olga")
        client.post(
            "/api/v1/auth/login",
            json={"username": "olga", "password": "bad-password"},
            headers={"X-Forwarded-For": "10.5.5.5"},
        )
        assert app.extensions["security"].audit.flush()

        resp = client.get("/api/v1/audit-logs?action=LOGIN_FAILED", headers=admin_headers)
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["meta"]["total"] == 1
        assert body["data"][0]["resource_id"] == "olga"

        recent = client.get("/api/v1/audit-logs/recent", headers=admin_headers).get_json()
        assert {row["action"] for row in recent["data"]} == {"LOGIN", "LOGIN_FAILED"}

    def test_bad_date_is_400(self, client, admin_headers):
        resp = client.get("/api/v1/audit-logs?start=yesterday", headers=admin_headers)

        assert resp.status_code == 400

    def test_cleanup(self, client, app, admin_headers, clock):
        audit = app.extensions["security"].audit
        assert audit.flush()
        clock.advance(days=120)
        # the first access token is long expired on the test clock
        fresh_headers = auth_headers(client, "root")
        assert audit.flush()

        resp = client.delete("/api/v1/audit-logs/cleanup?days_to_keep=90", headers=fresh_headers)

        assert resp.status_code == 200
        assert resp.get_json()["deleted"] == 1
        actions = sorted(r.action for r in audit_rows(audit))
        assert actions == ["CLEANUP", "LOGIN"]

    def test_stale_token_cannot_clean_up(self, client, admin_headers, clock):
        clock.advance(minutes=16)

        resp = client.delete("/api/v1/audit-logs/cleanup?days_to_keep=90", headers=admin_headers)

        assert resp.status_code == 401

    def test_non_integer_pagination_is_400(self, client, admin_headers):
        assert client.get("/api/v1/audit-logs?page=two", headers=admin_headers).status_code == 400
        assert client.get("/api/v1/users?limit=lots", headers=admin_headers).status_code == 400

    def test_limit_is_clamped(self, client, admin_headers):
        meta = client.get("/api/v1/audit-logs?limit=500&page=0", headers=admin_headers).get_json()["meta"]

        assert (meta["page"], meta["limit"]) == (1, 100)


class TestHealthAndCli:
    def test_health(self, client):
        body = client.get("/api/v1/health").get_json()

        assert body["status"] == "ok"
        assert body["audit_write_failures"] == 0

    def test_create_admin_command(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(
            args=["create-admin", "--username", "boss", "--email", "boss@example.com", "--password", "Admin-Pass-123"]
        )

        assert result.exit_code == 0, result.output
        assert fetch_user("boss").roles == ["ADMIN"]

    def test_purge_refresh_tokens_command(self, app, make_user, clock):
        make_user("olga")
        app.extensions["security"].sessions.login("olga", PASSWORD, "10.6.6.6")
        clock.advance(days=8)

        result = app.test_cli_runner().invoke(args=["purge-refresh-tokens"])

        assert result.exit_code == 0, result.output
        assert "Purged 1 expired refresh tokens" in result.output

    def test_purge_audit_logs_command(self, app, clock):
        audit = app.extensions["security"].audit
        audit.log_success("LOGIN", "USER", "1", actor="alice")
        assert audit.flush()
        clock.advance(days=100)
        audit.log_success("LOGIN", "USER", "2", actor="bob")
        assert audit.flush()

        result = app.test_cli_runner().invoke(args=["purge-audit-logs"])

        assert result.exit_code == 0, result.output
        assert "Removed 1 audit log entries older than 90 days" in result.output
        rows = audit_rows(audit)
        assert sorted((r.username, r.action) for r in rows) == [("bob", "LOGIN"), ("system", "CLEANUP")]
