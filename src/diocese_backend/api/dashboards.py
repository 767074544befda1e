from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from diocese_backend.database import get_db
from diocese_backend.interface.chats import ChatList
from diocese_backend.interface.organizations import DioceseGet, TestingCenterGet
from diocese_backend.interface.users import UserGet
from diocese_backend.model.auth import User
from diocese_backend.model.chat import Chat
from diocese_backend.model.organization import Diocese, TestingCenter
from diocese_backend.permissions.auth import get_current_identity
from diocese_backend.permissions.principal import AccessConstraint, Identity, derive_constraints
from diocese_backend.permissions.query_builders import scope_query
from diocese_backend.permissions.roles import InternalRole

dashboard_router = APIRouter()


class AdminDashboard(BaseModel):
    identity: Identity
    dioceses: List[DioceseGet]
    testing_centers: List[TestingCenterGet]
    users: List[UserGet]


class DioceseDashboard(BaseModel):
    identity: Identity
    diocese: Optional[DioceseGet] = None
    testing_centers: List[TestingCenterGet]
    users: List[UserGet]


class SchoolDashboard(BaseModel):
    identity: Identity
    diocese: Optional[DioceseGet] = None
    testing_center: Optional[TestingCenterGet] = None
    users: List[UserGet]


class AppHome(BaseModel):
    identity: Identity
    constraint: AccessConstraint
    chats: List[ChatList]


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


@dashboard_router.get("/admin", response_model=AdminDashboard)
def admin_dashboard(
    identity: Annotated[Optional[Identity], Depends(get_current_identity)],
    db: Session = Depends(get_db)
):
    if identity is None:
        return _redirect("/login")

    if identity.role != InternalRole.SUPER_ADMIN:
        return _redirect("/access-denied")

    return AdminDashboard(
        identity=identity,
        dioceses=db.query(Diocese).order_by(Diocese.name).all(),
        testing_centers=db.query(TestingCenter).order_by(TestingCenter.name).all(),
        users=db.query(User).order_by(User.id).all()
    )


@dashboard_router.get("/diocese-manager", response_model=DioceseDashboard)
def diocese_manager_dashboard(
    identity: Annotated[Optional[Identity], Depends(get_current_identity)],
    db: Session = Depends(get_db)
):
    if identity is None:
        return _redirect("/login")

    if not identity.has_role(InternalRole.DIOCESE_MANAGER, InternalRole.SUPER_ADMIN):
        return _redirect("/access-denied")

    if identity.diocese_id is None:
        return _redirect("/profile?error=no_diocese_assigned")

    constraint = AccessConstraint(
        has_constraints=True,
        diocese_id=identity.diocese_id,
        must_include_diocese_filter=True
    )

    return DioceseDashboard(
        identity=identity,
        diocese=db.query(Diocese).filter(Diocese.id == identity.diocese_id).first(),
        testing_centers=scope_query(db.query(TestingCenter), TestingCenter, constraint).order_by(TestingCenter.name).all(),
        users=scope_query(db.query(User), User, constraint).order_by(User.id).all()
    )


@dashboard_router.get("/school-manager", response_model=SchoolDashboard)
def school_manager_dashboard(
    identity: Annotated[Optional[Identity], Depends(get_current_identity)],
    db: Session = Depends(get_db)
):
    if identity is None:
        return _redirect("/login")

    if identity.testing_center_id is None or identity.diocese_id is None:
        return _redirect("/profile?error=missing_school_or_diocese")

    constraint = AccessConstraint(
        has_constraints=True,
        diocese_id=identity.diocese_id,
        testing_center_id=identity.testing_center_id,
        must_include_diocese_filter=True,
        must_include_testing_center_filter=True
    )

    return SchoolDashboard(
        identity=identity,
        diocese=db.query(Diocese).filter(Diocese.id == identity.diocese_id).first(),
        testing_center=db.query(TestingCenter).filter(TestingCenter.id == identity.testing_center_id).first(),
        users=scope_query(db.query(User), User, constraint).order_by(User.id).all()
    )


@dashboard_router.get("/app", response_model=AppHome)
def app_home(
    identity: Annotated[Optional[Identity], Depends(get_current_identity)],
    db: Session = Depends(get_db)
):
    if identity is None:
        return _redirect("/login")

    chats = (
        db.query(Chat)
        .filter(Chat.user_id == identity.id)
        .order_by(Chat.created_at.desc())
        .all()
    )

    return AppHome(identity=identity, constraint=derive_constraints(identity), chats=chats)


@dashboard_router.get("/profile")
def profile(
    identity: Annotated[Optional[Identity], Depends(get_current_identity)],
    error: Optional[str] = None
):
    if identity is None:
        return _redirect("/login")

    return {"identity": identity, "error": error, "restriction": derive_constraints(identity).description}
