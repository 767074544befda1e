import datetime
import logging
from typing import Annotated, Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, Form
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from diocese_backend.database import get_db
from diocese_backend.interface.users import LoginForm
from diocese_backend.model.auth import User
from diocese_backend.permissions.auth import (
    clear_auth_cookies,
    get_current_identity,
    make_db_auth_token,
    require_identity,
    set_db_auth_cookie,
)
from diocese_backend.permissions.passwords import check_password
from diocese_backend.permissions.principal import AccessConstraint, Identity, derive_constraints
from diocese_backend.permissions.roles import external_role_from_code, role_should_have_access

logger = logging.getLogger(__name__)

auth_router = APIRouter()


def login_error(message: str) -> RedirectResponse:
    return RedirectResponse(url=f"/login?errorMessage={quote(message)}", status_code=303)


@auth_router.post("/login")
def login(
    email: Annotated[str, Form()],
    password: Annotated[str, Form()],
    db: Session = Depends(get_db)
):
    """Sign in with email and password and issue the db-auth-token cookie"""

    try:
        form = LoginForm(email=email, password=password)
    except ValidationError:
        return login_error("Invalid email or password")

    try:
        user = db.query(User).filter(User.email == form.email).first()
    except SQLAlchemyError as e:
        logger.error(f"Database error during login: {e}")
        return login_error("Authentication error")

    if user is None:
        return login_error("User not found or invalid credentials")

    if not check_password(form.password, user.encrypted_password):
        return login_error("Invalid email or password")

    if user.deactivate:
        return login_error("Your account has been deactivated")

    external_role = external_role_from_code(user.role)
    if external_role is not None and not role_should_have_access(external_role):
        logger.info(f"User {user.id} with role {external_role.value} refused")
        return login_error("Your role does not have access to this application")

    now = datetime.datetime.now(datetime.timezone.utc)
    user.sign_in_count = (user.sign_in_count or 0) + 1
    user.last_sign_in_at = user.current_sign_in_at or now
    user.current_sign_in_at = now

    try:
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error updating sign-in stats: {e}")
        db.rollback()

    logger.info(f"User {user.id} signed in")

    response = RedirectResponse(url="/app", status_code=303)
    set_db_auth_cookie(response, make_db_auth_token(user.id))
    return response


@auth_router.post("/logout")
def logout():
    response = RedirectResponse(url="/", status_code=303)
    clear_auth_cookies(response)
    return response


class MeResponse(BaseModel):
    identity: Identity
    constraint: AccessConstraint
    restriction: str


@auth_router.get("/me", response_model=MeResponse)
def get_me(identity: Annotated[Identity, Depends(require_identity)]):
    constraint = derive_constraints(identity)
    return MeResponse(identity=identity, constraint=constraint, restriction=constraint.description)


@auth_router.get("/session")
def get_session(identity: Annotated[Optional[Identity], Depends(get_current_identity)]):
    """Whether the caller is signed in, without failing for anonymous callers"""
    return {"authenticated": identity is not None, "identity": identity}
