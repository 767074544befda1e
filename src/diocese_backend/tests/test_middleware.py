"""
Tests for the route guard middleware.

A small application is wrapped with the guard and an identity resolver that
reads the role from a request header, so no database is involved.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from diocese_backend.middleware import RouteGuardMiddleware, is_route_permitted, is_static_asset
from diocese_backend.permissions.auth import DB_AUTH_COOKIE, PROVIDER_ACCESS_COOKIE, PROVIDER_REFRESH_COOKIE
from diocese_backend.permissions.principal import Identity
from diocese_backend.permissions.roles import InternalRole


def _header_identity(request):
    role = request.headers.get("x-test-role")
    if role is None:
        return None
    return Identity(id=1, role=InternalRole(role), diocese_id=5, testing_center_id=51)


def _build_app(enforce: bool, resolver=_header_identity) -> FastAPI:
    app = FastAPI()

    @app.get("/")
    def landing():
        return {"page": "landing"}

    @app.get("/about")
    def about():
        return {"page": "about"}

    @app.get("/admin")
    def admin():
        return {"page": "admin"}

    @app.get("/diocese-manager")
    def diocese_manager():
        return {"page": "diocese-manager"}

    @app.get("/app")
    def app_home():
        return {"page": "app"}

    @app.get("/static/{name}")
    def static(name: str):
        return {"asset": name}

    app.add_middleware(RouteGuardMiddleware, identity_resolver=resolver, enforce=enforce)
    return app


def _set_cookie_headers(response):
    return response.headers.get_list("set-cookie")


class TestRouteHelpers:

    @pytest.mark.parametrize("path", ["/static/app.js", "/_next/chunk.js", "/favicon.ico", "/images/logo.SVG", "/a/b.webp"])
    def test_static_assets(self, path):
        assert is_static_asset(path)

    @pytest.mark.parametrize("path", ["/", "/app", "/admin/users"])
    def test_pages_are_not_static(self, path):
        assert not is_static_asset(path)

    def test_anonymous_sent_to_login(self):
        assert is_route_permitted("/app", None) == "/login"
        assert is_route_permitted("/admin/users", None) == "/login"

    def test_wrong_role_sent_to_access_denied(self):
        identity = Identity(id=3, role=InternalRole.SCHOOL_MANAGER)
        assert is_route_permitted("/admin", identity) == "/access-denied"
        assert is_route_permitted("/diocese-manager", identity) == "/access-denied"
        assert is_route_permitted("/school-manager", identity) is None

    def test_prefix_must_match_a_path_segment(self):
        assert is_route_permitted("/administrator", None) is None
        assert is_route_permitted("/application", None) is None

    def test_unprotected_route(self):
        assert is_route_permitted("/profile", None) is None


class TestLogout:

    def test_logout_clears_all_auth_cookies(self):
        client = TestClient(_build_app(enforce=False))
        client.cookies.set(DB_AUTH_COOKIE, "db-3-1700000000000")

        response = client.get("/logout", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/"

        cleared = _set_cookie_headers(response)
        for name in (DB_AUTH_COOKIE, PROVIDER_ACCESS_COOKIE, PROVIDER_REFRESH_COOKIE):
            header = next(h for h in cleared if h.startswith(f"{name}="))
            assert "Max-Age=0" in header


class TestLandingRedirect:

    def test_anonymous_sees_landing(self):
        client = TestClient(_build_app(enforce=False))
        response = client.get("/", follow_redirects=False)

        assert response.status_code == 200
        assert response.json() == {"page": "landing"}

    def test_signed_in_visitor_goes_to_app(self):
        client = TestClient(_build_app(enforce=False))
        client.cookies.set(DB_AUTH_COOKIE, "db-3-1700000000000")

        response = client.get("/", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/app"

    def test_public_parameter_keeps_landing(self):
        client = TestClient(_build_app(enforce=False))
        client.cookies.set(PROVIDER_ACCESS_COOKIE, "provider-token")

        response = client.get("/?public=1", follow_redirects=False)

        assert response.status_code == 200


class TestCookieRefresh:

    def test_present_cookies_are_reissued(self):
        client = TestClient(_build_app(enforce=False))
        client.cookies.set(DB_AUTH_COOKIE, "db-3-1700000000000")

        response = client.get("/about")
        response = client.get("/app")

        headers = _set_cookie_headers(response)
        refreshed = next(h for h in headers if h.startswith(f"{DB_AUTH_COOKIE}="))
        assert "db-3-1700000000000" in refreshed
        assert "HttpOnly" in refreshed
        assert "Max-Age=604800" in refreshed

    def test_absent_cookies_are_not_set(self):
        client = TestClient(_build_app(enforce=False))
        response = client.get("/app")

        assert _set_cookie_headers(response) == []


class TestEnforcement:

    def test_not_enforced_by_default_flag(self):
        client = TestClient(_build_app(enforce=False))
        assert client.get("/admin", follow_redirects=False).status_code == 200

    def test_anonymous_redirected_to_login(self):
        client = TestClient(_build_app(enforce=True))
        response = client.get("/app", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    def test_wrong_role_redirected_to_access_denied(self):
        client = TestClient(_build_app(enforce=True))
        response = client.get("/admin", headers={"x-test-role": "school_manager"}, follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/access-denied"

    def test_permitted_roles_pass(self):
        client = TestClient(_build_app(enforce=True))

        assert client.get("/admin", headers={"x-test-role": "super_admin"}).json() == {"page": "admin"}
        assert client.get("/diocese-manager", headers={"x-test-role": "diocese_manager"}).status_code == 200
        assert client.get("/app", headers={"x-test-role": "school_manager"}).status_code == 200

    def test_public_routes_skip_resolution(self):
        calls = []

        def resolver(request):
            calls.append(request.url.path)
            return None

        client = TestClient(_build_app(enforce=True, resolver=resolver))

        assert client.get("/about").status_code == 200
        assert client.get("/static/app.js").status_code == 200
        assert calls == []
