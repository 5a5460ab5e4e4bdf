"""
tests/test_api_user_routes.py -- Integration tests for /api/users/* and the app shell.

Coverage:
  - POST /api/users/create: 401 without token, 403 for non-admin, Admin role 400,
    duplicate 400, success with and without OTP
  - GET /api/users/me: 401 without/with bad token, 200 with profile (no password)
  - GET / and GET /api/health: public
  - request logging still writes a line when the handler raises
"""

from __future__ import annotations

import asyncio
import logging

import pytest
from starlette.requests import Request

from api.main import log_requests
from auth.models import User
from auth.tokens import hash_password


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestCreateUser:
    def test_requires_token(self, api_client, new_email):
        client, *_ = api_client
        resp = client.post("/api/users/create", json={"name": "A", "email": new_email(), "password": "pw"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Unauthorized"

    def test_rejects_non_admin(self, api_client, new_email):
        client, _token, store, _mailer = api_client
        email = new_email("manager")
        store.create_user(
            User(name="M", email=email, password=hash_password("pw", rounds=4), role="Manager", is_verified=True)
        )
        login = client.post("/api/auth/login", json={"email": email, "password": "pw"}).json()

        resp = client.post(
            "/api/users/create",
            json={"name": "A", "email": new_email(), "password": "pw"},
            headers=_auth(login["accessToken"]),
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "Access denied - insufficient role"

    def test_admin_role_refused(self, api_client, new_email):
        client, token, *_ = api_client
        resp = client.post(
            "/api/users/create",
            json={"name": "A", "email": new_email(), "password": "pw", "role": "Admin"},
            headers=_auth(token),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid role. Only Manager or User allowed."

    def test_creates_user_and_sends_otp(self, api_client, new_email):
        client, token, store, mailer = api_client
        email = new_email()
        resp = client.post(
            "/api/users/create",
            json={"name": "Ann", "email": email, "password": "pw-123"},
            headers=_auth(token),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "User created successfully"
        user = store.find_by_id(body["userId"])
        assert user.email == email
        assert user.role == "User"
        assert user.is_verified is False
        assert mailer.last_code_for(email) == store.list_otps(email)[0].code

    def test_creates_verified_manager_without_otp(self, api_client, new_email):
        client, token, store, _mailer = api_client
        email = new_email()
        resp = client.post(
            "/api/users/create",
            json={"name": "Max", "email": email, "password": "pw-123", "role": "Manager", "sendOtp": False},
            headers=_auth(token),
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Manager created successfully"
        assert store.find_by_email(email).is_verified is True
        assert store.list_otps(email) == []

        login = client.post("/api/auth/login", json={"email": email, "password": "pw-123"})
        assert login.status_code == 200

    def test_duplicate_email(self, api_client, new_email):
        client, token, *_ = api_client
        payload = {"name": "Dup", "email": new_email(), "password": "pw", "sendOtp": False}
        assert client.post("/api/users/create", json=payload, headers=_auth(token)).status_code == 200
        resp = client.post("/api/users/create", json=payload, headers=_auth(token))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email already registered"

    def test_password_kept_verbatim_and_email_trimmed(self, api_client, new_email):
        client, token, store, _mailer = api_client
        email = new_email()
        resp = client.post(
            "/api/users/create",
            json={"name": "Sam", "email": f"  {email} ", "password": " pass word ", "sendOtp": False},
            headers=_auth(token),
        )
        assert resp.status_code == 200
        assert store.find_by_email(email) is not None

        login = client.post("/api/auth/login", json={"email": f" {email}", "password": " pass word "})
        assert login.status_code == 200

        trimmed = client.post("/api/auth/login", json={"email": email, "password": "pass word"})
        assert trimmed.status_code == 400


class TestMe:
    def test_requires_token(self, api_client):
        client, *_ = api_client
        assert client.get("/api/users/me").status_code == 401

    def test_bad_token(self, api_client):
        client, *_ = api_client
        assert client.get("/api/users/me", headers=_auth("garbage")).status_code == 401

    def test_refresh_token_is_not_a_bearer_token(self, api_client):
        client, _token, store, _mailer = api_client
        admin = store.find_by_email("admin@example.com")
        login = client.post("/api/auth/login", json={"email": admin.email, "password": "adminpass123"}).json()
        assert client.get("/api/users/me", headers=_auth(login["refreshToken"])).status_code == 401

    def test_returns_profile(self, api_client):
        client, token, *_ = api_client
        resp = client.get("/api/users/me", headers=_auth(token))
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["email"] == "admin@example.com"
        assert user["role"] == "Admin"
        assert user["isVerified"] is True
        assert "password" not in user


class TestShell:
    def test_root(self, api_client):
        client, *_ = api_client
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Billing Auth API running"}

    def test_health(self, api_client):
        client, *_ = api_client
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["components"] == {"app": "ok", "database": "ok"}

    def test_unknown_route_uses_envelope(self, api_client):
        client, *_ = api_client
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert "message" in resp.json()

    def test_request_logged_when_handler_raises(self, caplog):
        scope = {
            "type": "http",
            "method": "POST",
            "path": "/api/boom",
            "headers": [],
            "query_string": b"",
            "client": ("10.0.0.7", 5555),
        }

        async def call_next(_request):
            raise RuntimeError("handler blew up")

        with caplog.at_level(logging.INFO, logger="billingauth.api"):
            with pytest.raises(RuntimeError):
                asyncio.run(log_requests(Request(scope), call_next))

        assert "POST /api/boom 500" in caplog.text
        assert "10.0.0.7" in caplog.text
