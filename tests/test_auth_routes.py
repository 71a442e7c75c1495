"""
Integration tests for /api/auth/* through the real FastAPI app.

Covers:
  - register: 201 public view, duplicate and missing-field errors
  - login: access token in the body, refresh token only as an httpOnly cookie
  - refresh: cookie > body > bearer precedence, 401/403 split, reuse detection
  - logout: clears every device's token and the cookie
  - the end-to-end login -> refresh -> logout -> stale refresh scenario
"""

from __future__ import annotations

import uuid

from auth.tokens import create_refresh_token


def unique_email() -> str:
    return f"reader-{uuid.uuid4().hex[:12]}@example.com"


def _cookie_header(token: str) -> dict:
    return {"Cookie": f"refreshToken={token}"}


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_returns_public_user(self, client):
        email = unique_email()
        resp = client.post("/api/auth/register", json={"username": "ana", "email": email, "password": "pw123456"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["username"] == "ana"
        assert body["email"] == email
        assert "password" not in body
        assert "hashedPassword" not in body
        assert "tokens" not in body

    def test_does_not_log_in(self, client):
        resp = client.post("/api/auth/register", json={"username": "ana", "email": unique_email(), "password": "pw"})
        assert "set-cookie" not in resp.headers

    def test_duplicate_email(self, client, registered_user):
        user = registered_user()
        resp = client.post(
            "/api/auth/register",
            json={"username": "copy", "email": user["email"].upper(), "password": "pw"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/register", json={"email": unique_email()})
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "missing_fields",
            "message": "Please enter all fields.",
            "detail": None,
        }


class TestLogin:
    def test_success(self, client, registered_user, user_store):
        user = registered_user()
        resp = client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["id"] == user["id"]
        assert body["accessToken"]
        assert "refreshToken" not in body
        assert resp.headers["cache-control"] == "no-store"
        assert user_store.get_tokens(user["id"]) == [resp.cookies.get("refreshToken")]

    def test_cookie_attributes(self, client, registered_user):
        user = registered_user()
        resp = client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
        cookie = resp.headers["set-cookie"].lower()
        assert cookie.startswith("refreshtoken=")
        assert "httponly" in cookie
        assert "samesite=strict" in cookie
        assert "max-age=604800" in cookie

    def test_wrong_password(self, client, registered_user, user_store):
        user = registered_user()
        resp = client.post("/api/auth/login", json={"email": user["email"], "password": "not it"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"
        assert "set-cookie" not in resp.headers
        assert user_store.get_tokens(user["id"]) == []

    def test_unknown_email(self, client):
        resp = client.post("/api/auth/login", json={"email": unique_email(), "password": "pw"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/login", json={"email": unique_email()})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_fields"


class TestRefresh:
    def test_from_cookie(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post("/api/auth/refresh", headers=_cookie_header(user["refresh_token"]))
        assert resp.status_code == 200
        assert resp.json()["accessToken"]
        assert resp.headers["cache-control"] == "no-store"

    def test_from_body(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post("/api/auth/refresh", json={"refreshToken": user["refresh_token"]})
        assert resp.status_code == 200

    def test_from_bearer(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post("/api/auth/refresh", headers=_bearer(user["refresh_token"]))
        assert resp.status_code == 200

    def test_new_access_token_works(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post("/api/auth/refresh", json={"refreshToken": user["refresh_token"]})
        me = client.get("/api/users/me", headers=_bearer(resp.json()["accessToken"]))
        assert me.status_code == 200
        assert me.json()["id"] == user["id"]

    def test_cookie_wins_over_body(self, client, logged_in_user):
        user = logged_in_user()
        ok = client.post(
            "/api/auth/refresh",
            headers=_cookie_header(user["refresh_token"]),
            json={"refreshToken": "garbage"},
        )
        assert ok.status_code == 200

        rejected = client.post(
            "/api/auth/refresh",
            headers=_cookie_header("garbage"),
            json={"refreshToken": user["refresh_token"]},
        )
        assert rejected.status_code == 403
        assert rejected.json()["error"]["code"] == "invalid_token"

    def test_body_wins_over_bearer(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post(
            "/api/auth/refresh",
            headers=_bearer("garbage"),
            json={"refreshToken": user["refresh_token"]},
        )
        assert resp.status_code == 200

    def test_missing_token(self, client):
        resp = client.post("/api/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_access_token_rejected(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post("/api/auth/refresh", json={"refreshToken": user["access_token"]})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_reuse_detection_revokes_all_devices(self, client, logged_in_user, user_store):
        user = logged_in_user()
        second = client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
        client.cookies.clear()
        assert len(user_store.get_tokens(user["id"])) == 2

        forged = create_refresh_token(user["id"], expire_seconds=1234)
        resp = client.post("/api/auth/refresh", json={"refreshToken": forged})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "token_reuse_detected"
        assert user_store.get_tokens(user["id"]) == []

        for token in (user["refresh_token"], second.cookies.get("refreshToken")):
            again = client.post("/api/auth/refresh", json={"refreshToken": token})
            assert again.status_code == 403


class TestLogout:
    def test_clears_every_token(self, client, logged_in_user, user_store):
        user = logged_in_user()
        client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
        client.cookies.clear()

        resp = client.post("/api/auth/logout", headers=_bearer(user["access_token"]))
        assert resp.status_code == 200
        assert resp.json() == {"message": "User logged out"}
        assert user_store.get_tokens(user["id"]) == []

    def test_expires_cookie(self, client, logged_in_user):
        user = logged_in_user()
        resp = client.post("/api/auth/logout", headers=_bearer(user["access_token"]))
        cookie = resp.headers["set-cookie"].lower()
        assert cookie.startswith("refreshtoken=")
        assert "max-age=0" in cookie

    def test_missing_token(self, client):
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 401

    def test_invalid_token(self, client):
        resp = client.post("/api/auth/logout", headers=_bearer("garbage"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "invalid_token"


class TestSessionLifecycle:
    def test_login_refresh_logout_then_stale_refresh(self, client, registered_user, user_store):
        """The browser flow: the cookie jar carries the refresh token throughout."""
        user = registered_user()

        login = client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
        assert login.status_code == 200
        old_refresh = login.cookies.get("refreshToken")
        access = login.json()["accessToken"]

        refreshed = client.post("/api/auth/refresh")
        assert refreshed.status_code == 200
        assert refreshed.json()["accessToken"]

        logout = client.post("/api/auth/logout", headers=_bearer(access))
        assert logout.status_code == 200
        assert user_store.get_tokens(user["id"]) == []

        client.cookies.clear()
        stale = client.post("/api/auth/refresh", headers=_cookie_header(old_refresh))
        assert stale.status_code == 403
        assert stale.json()["error"]["code"] == "token_reuse_detected"


class TestProviders:
    def test_no_providers_configured(self, client):
        resp = client.get("/api/auth/providers")
        assert resp.status_code == 200
        assert resp.json() == []
