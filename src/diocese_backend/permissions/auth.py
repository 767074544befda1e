"""
Session resolution for incoming requests.

Two authentication mechanisms can be present on the same request: the
database token cookie issued by ``/auth/login`` and the managed auth
provider's access token cookie. Both are collected as evidence and handed to
a single resolver, where the database token takes precedence.
"""

import logging
import re
import time
from typing import Annotated, Callable, List, Mapping, Optional, Union
from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

from diocese_backend.api.exceptions import UnauthorizedException
from diocese_backend.database import get_db
from diocese_backend.model.auth import User
from diocese_backend.permissions.principal import Identity
from diocese_backend.permissions.roles import internal_role_from_code
from diocese_backend.settings import settings

logger = logging.getLogger(__name__)

DB_AUTH_COOKIE = "db-auth-token"
PROVIDER_ACCESS_COOKIE = "sb-access-token"
PROVIDER_REFRESH_COOKIE = "sb-refresh-token"
AUTH_COOKIES = (DB_AUTH_COOKIE, PROVIDER_ACCESS_COOKIE, PROVIDER_REFRESH_COOKIE)

DB_AUTH_TOKEN_MAX_AGE = 60 * 60 * 24 * 7  # 1 week


def make_db_auth_token(user_id: int, now: Optional[float] = None) -> str:
    timestamp = int((now if now is not None else time.time()) * 1000)
    return f"db-{user_id}-{timestamp}"


def parse_db_auth_token(token: Optional[str]) -> Optional[int]:
    """Extract the user id from a ``db-<id>-<epoch-ms>`` token, None if malformed."""

    if not token or not token.startswith("db-"):
        return None

    parts = token.split("-")
    if len(parts) < 3:
        return None

    match = re.match(r"\d+", parts[1])
    if match is None:
        return None

    return int(match.group(0))


class DbTokenEvidence(BaseModel):
    user_id: int


class ProviderSessionEvidence(BaseModel):
    access_token: str


AuthEvidence = Union[DbTokenEvidence, ProviderSessionEvidence]


def collect_evidence(cookies: Mapping[str, str]) -> List[AuthEvidence]:
    """Evidence found in the request cookies, highest precedence first"""

    evidence: List[AuthEvidence] = []

    db_token = cookies.get(DB_AUTH_COOKIE)
    if db_token:
        user_id = parse_db_auth_token(db_token)
        if user_id is not None:
            evidence.append(DbTokenEvidence(user_id=user_id))
        else:
            logger.info("Ignoring malformed db auth token")

    access_token = cookies.get(PROVIDER_ACCESS_COOKIE)
    if access_token:
        evidence.append(ProviderSessionEvidence(access_token=access_token))

    return evidence


def verify_provider_token(access_token: str) -> Optional[str]:
    """Verify a provider access token and return its subject (the user's uuid)."""

    if not settings.PROVIDER_JWT_SECRET:
        logger.warning("PROVIDER_JWT_SECRET is not configured, ignoring provider session")
        return None

    try:
        claims = jwt.decode(
            access_token,
            settings.PROVIDER_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.PROVIDER_JWT_AUDIENCE
        )
    except JWTError as e:
        logger.warning(f"Provider token verification failed: {e}")
        return None

    return claims.get("sub")


def identity_from_user(user: User, provider: str = "db") -> Identity:
    return Identity(
        id=user.id,
        email=user.email,
        username=user.username,
        role=internal_role_from_code(user.role),
        diocese_id=user.diocese_id,
        testing_center_id=user.testing_center_id,
        provider=provider
    )


class SessionResolver:
    """Turns authentication evidence into an Identity"""

    def __init__(self, db: Session, verifier: Optional[Callable[[str], Optional[str]]] = None):
        self.db = db
        self.verifier = verifier or verify_provider_token

    def _user_for(self, evidence: AuthEvidence) -> Optional[User]:

        if isinstance(evidence, DbTokenEvidence):
            return self.db.query(User).filter(User.id == evidence.user_id).first()

        elif isinstance(evidence, ProviderSessionEvidence):
            subject = self.verifier(evidence.access_token)
            if subject is None:
                return None
            return self.db.query(User).filter(User.uuid == subject).first()

        return None

    def resolve(self, evidence: List[AuthEvidence]) -> Optional[Identity]:

        for item in evidence:
            user = self._user_for(item)

            if user is None:
                logger.info(f"No user for {type(item).__name__}")
                continue

            if user.deactivate:
                logger.info(f"User {user.id} is deactivated")
                continue

            provider = "db" if isinstance(item, DbTokenEvidence) else "provider"
            return identity_from_user(user, provider)

        return None


def resolve_identity(cookies: Mapping[str, str], db: Session) -> Optional[Identity]:
    return SessionResolver(db).resolve(collect_evidence(cookies))


def get_current_identity(request: Request, db: Session = Depends(get_db)) -> Optional[Identity]:
    """Identity of the caller or None for anonymous requests"""
    return resolve_identity(request.cookies, db)


def require_identity(identity: Annotated[Optional[Identity], Depends(get_current_identity)]) -> Identity:
    if identity is None:
        raise UnauthorizedException("Authentication required")
    return identity


def set_db_auth_cookie(response, token: str) -> None:
    response.set_cookie(
        DB_AUTH_COOKIE,
        token,
        path="/",
        max_age=DB_AUTH_TOKEN_MAX_AGE,
        httponly=True,
        secure=settings.SECURE_COOKIES,
        samesite="lax"
    )


def clear_auth_cookies(response) -> None:
    """Expire every authentication cookie on the response."""
    for name in AUTH_COOKIES:
        response.delete_cookie(name, path="/")
