"""
Tests for the sign in flow and the session endpoints.
"""

import pytest
from urllib.parse import parse_qs, urlparse

from diocese_backend.model.auth import User
from diocese_backend.permissions.auth import DB_AUTH_COOKIE, parse_db_auth_token
from diocese_backend.tests.fixtures import PASSWORD, SCHOOL_MANAGER_ID


def _error_message(response):
    location = urlparse(response.headers["location"])
    assert location.path == "/login"
    return parse_qs(location.query)["errorMessage"][0]


def _login(client, email, password):
    return client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)


class TestLogin:

    def test_successful_login_issues_cookie(self, db_client):
        response = _login(db_client, "user3@diocese.org", PASSWORD)

        assert response.status_code == 303
        assert response.headers["location"] == "/app"

        cookie = next(h for h in response.headers.get_list("set-cookie") if h.startswith(f"{DB_AUTH_COOKIE}="))
        assert "HttpOnly" in cookie
        assert "Max-Age=604800" in cookie
        assert parse_db_auth_token(db_client.cookies.get(DB_AUTH_COOKIE)) == SCHOOL_MANAGER_ID

    def test_login_updates_sign_in_stats(self, db_client, seeded_db):
        _login(db_client, "user3@diocese.org", PASSWORD)
        _login(db_client, "user3@diocese.org", PASSWORD)

        user = seeded_db.query(User).filter(User.id == SCHOOL_MANAGER_ID).first()
        assert user.sign_in_count == 2
        assert user.current_sign_in_at is not None
        assert user.last_sign_in_at is not None

    @pytest.mark.parametrize("email,password,message", [
        ("user3@diocese.org", "wrong-password", "Invalid email or password"),
        ("nobody@diocese.org", PASSWORD, "User not found or invalid credentials"),
        ("user3@diocese.org", "abc", "Invalid email or password"),
        ("not-an-email", PASSWORD, "Invalid email or password"),
        ("user4@diocese.org", PASSWORD, "Your role does not have access to this application"),
        ("user5@diocese.org", PASSWORD, "Your account has been deactivated"),
    ])
    def test_refused_logins(self, db_client, email, password, message):
        response = _login(db_client, email, password)

        assert response.status_code == 303
        assert _error_message(response) == message
        assert db_client.cookies.get(DB_AUTH_COOKIE) is None

    def test_legacy_plaintext_password(self, db_client, seeded_db):
        user = seeded_db.query(User).filter(User.id == SCHOOL_MANAGER_ID).first()
        user.encrypted_password = "plaintext-secret"
        seeded_db.commit()

        response = _login(db_client, "user3@diocese.org", "plaintext-secret")

        assert response.headers["location"] == "/app"


class TestSession:

    def test_me_requires_authentication(self, db_client):
        response = db_client.get("/auth/me")
        assert response.status_code == 401

    def test_me_after_login(self, db_client):
        _login(db_client, "user2@diocese.org", PASSWORD)

        response = db_client.get("/auth/me")

        assert response.status_code == 200
        body = response.json()
        assert body["identity"]["id"] == 2
        assert body["identity"]["role"] == "diocese_manager"
        assert body["identity"]["provider"] == "db"
        assert body["constraint"]["must_include_diocese_filter"] is True
        assert body["constraint"]["diocese_id"] == 5
        assert body["restriction"] == "You can only access data for your diocese (diocese_id=5)."

    def test_session_for_anonymous(self, db_client):
        assert db_client.get("/auth/session").json() == {"authenticated": False, "identity": None}

    def test_session_for_deactivated_token(self, db_client):
        db_client.cookies.set(DB_AUTH_COOKIE, "db-5-1700000000000")
        assert db_client.get("/auth/session").json()["authenticated"] is False

    def test_logout_endpoint_clears_cookies(self, db_client):
        _login(db_client, "user3@diocese.org", PASSWORD)

        response = db_client.post("/auth/logout", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/"
        assert db_client.cookies.get(DB_AUTH_COOKIE) is None
