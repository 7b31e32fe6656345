"""
backend/test_auth_routes.py

Integration tests for /api/auth: registration, email confirmation callback,
login, logout and password reset.

Run:
    pytest backend/test_auth_routes.py -v
"""

from unittest.mock import patch

import pytest

from backend.config import SITE_URL
from backend.routes_auth import LOGIN_ERROR_PATH, safe_next

AUTH = "/api/auth"
PASSWORD = "correct-horse-42"


def register(client, email="sponsor@example.com", role="deal_sponsor", password=PASSWORD):
    return client.post(
        f"{AUTH}/register",
        json={
            "email": email,
            "password": password,
            "first_name": "Dana",
            "last_name": "Sponsor",
            "user_role": role,
        },
    )


def confirm(client, code, **params):
    return client.get(f"{AUTH}/callback", params={"code": code, **params}, follow_redirects=False)


class TestRegisterAndLogin:

    def test_register_returns_dev_code(self, client):
        r = register(client, email="  Sponsor@Example.com ")

        assert r.status_code == 200
        assert r.json()["dev_code"]
        assert "verify" in r.json()["message"]

    def test_duplicate_email(self, client):
        register(client)

        r = register(client, email="SPONSOR@example.com")

        assert r.status_code == 400
        assert r.json()["detail"] == "An account with this email already exists"

    def test_invalid_registration_uses_error_shape(self, client):
        r = register(client, role="admin", password="short")

        assert r.status_code == 400
        body = r.json()
        assert body["error"] == "Invalid input data"
        assert sorted(d["path"] for d in body["details"]) == ["password", "user_role"]

    def test_login_requires_verified_email(self, client):
        register(client)

        r = client.post(f"{AUTH}/login", json={"email": "sponsor@example.com", "password": PASSWORD})

        assert r.status_code == 400
        assert r.json()["detail"] == "Please verify your email address before logging in"

    @pytest.mark.parametrize("email,password", [
        ("sponsor@example.com", "wrong-password"),
        ("nobody@example.com", PASSWORD),
    ])
    def test_bad_credentials(self, client, email, password):
        confirm(client, register(client).json()["dev_code"])

        r = client.post(f"{AUTH}/login", json={"email": email, "password": password})

        assert r.status_code == 400
        assert r.json()["detail"] == "Invalid email or password"

    def test_login_after_confirmation(self, client):
        confirm(client, register(client).json()["dev_code"])
        client.cookies.clear()

        r = client.post(f"{AUTH}/login", json={"email": "sponsor@example.com", "password": PASSWORD})

        assert r.status_code == 200
        body = r.json()
        assert body["access_token"]
        assert body["user"]["email"] == "sponsor@example.com"
        assert body["user"]["user_metadata"]["role"] == "deal_sponsor"
        assert body["user"]["user_metadata"]["full_name"] == "Dana Sponsor"
        assert "access_token" in r.cookies


class TestCallback:

    def test_confirmation_redirects_and_sets_cookie(self, client):
        code = register(client).json()["dev_code"]

        r = confirm(client, code, next="/opportunities/new")

        assert r.status_code == 302
        assert r.headers["location"] == f"{SITE_URL}/opportunities/new"
        assert "access_token" in r.cookies

    def test_default_next(self, client):
        r = confirm(client, register(client).json()["dev_code"])

        assert r.headers["location"] == f"{SITE_URL}/dashboard"

    def test_code_is_single_use(self, client):
        code = register(client).json()["dev_code"]
        confirm(client, code)

        r = confirm(client, code)

        assert r.headers["location"] == f"{SITE_URL}{LOGIN_ERROR_PATH}"

    @pytest.mark.parametrize("params", [{}, {"code": "bogus"}])
    def test_failure_redirects_to_login(self, client, params):
        r = client.get(f"{AUTH}/callback", params=params, follow_redirects=False)

        assert r.status_code == 302
        assert r.headers["location"].endswith("/auth/login?error=Authentication%20failed")

    @pytest.mark.parametrize("next_path,expected", [
        ("/portfolio", "/portfolio"),
        ("https://evil.example", "/dashboard"),
        ("//evil.example", "/dashboard"),
        ("/\\evil.example", "/dashboard"),
        (None, "/dashboard"),
    ])
    def test_safe_next(self, next_path, expected):
        assert safe_next(next_path) == expected


class TestSession:

    def test_me_anonymous(self, client):
        r = client.get(f"{AUTH}/me")

        assert r.status_code == 200
        assert r.json()["authenticated"] is False

    def test_me_with_bearer(self, client, make_user):
        user = make_user("capital_partner")

        r = client.get(f"{AUTH}/me", headers=user.headers)

        assert r.json()["authenticated"] is True
        assert r.json()["actor_id"] == user.id
        assert r.json()["role"] == "capital_partner"

    def test_invalid_token_rejected(self, client):
        r = client.get(f"{AUTH}/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert r.status_code == 401

    def test_logout_revokes_token(self, client, make_user):
        user = make_user()

        assert client.post(f"{AUTH}/logout", headers=user.headers).status_code == 200
        assert client.get(f"{AUTH}/me", headers=user.headers).status_code == 401

    def test_logout_requires_auth(self, client):
        assert client.post(f"{AUTH}/logout").status_code == 401


class TestVerificationAndReset:

    def test_resend_verification(self, client, make_user):
        register(client, email="pending@example.com")
        verified = make_user()

        pending = client.post(f"{AUTH}/verify-email", json={"email": "pending@example.com"})
        done = client.post(f"{AUTH}/verify-email", json={"email": verified.email})
        unknown = client.post(f"{AUTH}/verify-email", json={"email": "ghost@example.com"})

        assert pending.status_code == done.status_code == unknown.status_code == 200
        assert pending.json()["dev_code"]
        assert done.json()["dev_code"] is None
        assert unknown.json()["dev_code"] is None

    def test_resent_code_replaces_the_old_one(self, client):
        first = register(client, email="pending@example.com").json()["dev_code"]
        second = client.post(f"{AUTH}/verify-email", json={"email": "pending@example.com"}).json()["dev_code"]

        assert confirm(client, first).headers["location"].endswith(LOGIN_ERROR_PATH)
        assert confirm(client, second).headers["location"].endswith("/dashboard")

    def test_forgot_password_same_response_for_unknown_email(self, client):
        r = client.post(f"{AUTH}/forgot-password", json={"email": "ghost@example.com"})

        assert r.status_code == 200
        assert r.json()["dev_code"] is None

    def test_reset_password_flow(self, client, make_user):
        user = make_user()
        code = client.post(f"{AUTH}/forgot-password", json={"email": user.email}).json()["dev_code"]

        r = client.post(f"{AUTH}/reset-password", json={"code": code, "password": "brand-new-pass"})

        assert r.status_code == 200
        # Old sessions are revoked
        assert client.get(f"{AUTH}/me", headers=user.headers).status_code == 401
        # Old password no longer works, new one does
        old = client.post(f"{AUTH}/login", json={"email": user.email, "password": PASSWORD})
        new = client.post(f"{AUTH}/login", json={"email": user.email, "password": "brand-new-pass"})
        assert old.status_code == 400
        assert new.status_code == 200
        # Code is single-use
        again = client.post(f"{AUTH}/reset-password", json={"code": code, "password": "another-pass"})
        assert again.status_code == 400

    def test_signup_code_cannot_reset_password(self, client):
        code = register(client).json()["dev_code"]

        r = client.post(f"{AUTH}/reset-password", json={"code": code, "password": "brand-new-pass"})

        assert r.status_code == 400
        assert r.json()["detail"] == "Invalid or expired code"

    def test_codes_hidden_outside_dev(self, client):
        with patch("backend.routes_auth.IS_DEV", False):
            r = register(client)

        assert r.status_code == 200
        assert r.json()["dev_code"] is None
