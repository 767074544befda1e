"""
Route guard applied to every request.

Pages re-check roles themselves, so role enforcement here is off unless
``ENFORCE_ROUTE_ROLES`` is set. The guard always handles ``/logout``, keeps
the authentication cookies alive and sends signed in visitors from ``/`` to
``/app``.
"""

import logging
from typing import Callable, Dict, Optional, Tuple
from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from diocese_backend.database import get_db
from diocese_backend.permissions.auth import (
    AUTH_COOKIES,
    DB_AUTH_COOKIE,
    DB_AUTH_TOKEN_MAX_AGE,
    clear_auth_cookies,
    resolve_identity,
    set_db_auth_cookie,
)
from diocese_backend.permissions.principal import Identity
from diocese_backend.permissions.roles import InternalRole
from diocese_backend.settings import settings

logger = logging.getLogger(__name__)

STATIC_PREFIXES = ("/static/", "/_next/", "/favicon.ico")
STATIC_EXTENSIONS = (".svg", ".png", ".jpg", ".jpeg", ".gif", ".webp", ".ico")

PUBLIC_ROUTES = ("/about", "/contact", "/features", "/pricing")

# path prefix -> roles allowed, None means any signed in user
ROUTE_ROLES: Dict[str, Optional[Tuple[InternalRole, ...]]] = {
    "/admin": (InternalRole.SUPER_ADMIN,),
    "/diocese-manager": (InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER),
    "/school-manager": (InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER, InternalRole.SCHOOL_MANAGER),
    "/app": None,
}


def is_static_asset(path: str) -> bool:
    return path.startswith(STATIC_PREFIXES) or path.lower().endswith(STATIC_EXTENSIONS)


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_route_permitted(path: str, identity: Optional[Identity]) -> Optional[str]:
    """Return the redirect target for a refused request, None when the request may proceed."""

    for prefix, roles in ROUTE_ROLES.items():
        if not _matches(path, prefix):
            continue

        if identity is None:
            return "/login"

        if roles is not None and not identity.has_role(*roles):
            return "/access-denied"

        return None

    return None


def _resolve_from_database(request: Request) -> Optional[Identity]:
    with next(get_db()) as db:
        return resolve_identity(request.cookies, db)


class RouteGuardMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, identity_resolver: Optional[Callable[[Request], Optional[Identity]]] = None,
                 enforce: Optional[bool] = None):
        super().__init__(app)
        self.identity_resolver = identity_resolver or _resolve_from_database
        self.enforce = settings.ENFORCE_ROUTE_ROLES if enforce is None else enforce

    async def dispatch(self, request: Request, call_next):

        path = request.url.path

        if is_static_asset(path):
            return await call_next(request)

        if path == "/logout":
            response = RedirectResponse(url="/", status_code=303)
            clear_auth_cookies(response)
            return response

        has_session = any(request.cookies.get(name) for name in AUTH_COOKIES)

        if path in PUBLIC_ROUTES:
            return await call_next(request)

        if self.enforce:
            identity = self.identity_resolver(request)
            target = is_route_permitted(path, identity)
            if target is not None:
                logger.info(f"Route guard refused {path}, redirecting to {target}")
                return RedirectResponse(url=target, status_code=303)

        if path == "/" and has_session and "public" not in request.query_params:
            response = RedirectResponse(url="/app", status_code=303)
        else:
            response = await call_next(request)

        self._refresh_cookies(request, response)
        return response

    def _refresh_cookies(self, request: Request, response) -> None:
        """Re-issue the session cookies so their lifetime slides with activity."""

        already_set = {header.split("=", 1)[0] for header in response.headers.getlist("set-cookie")}

        db_token = request.cookies.get(DB_AUTH_COOKIE)
        if db_token and DB_AUTH_COOKIE not in already_set:
            set_db_auth_cookie(response, db_token)

        for name in AUTH_COOKIES[1:]:
            value = request.cookies.get(name)
            if value and name not in already_set:
                response.set_cookie(
                    name,
                    value,
                    path="/",
                    max_age=DB_AUTH_TOKEN_MAX_AGE,
                    httponly=True,
                    secure=settings.SECURE_COOKIES,
                    samesite="lax"
                )
