import logging
from typing import Annotated, List
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from diocese_backend.api.exceptions import BadRequestException, ForbiddenException, NotFoundException
from diocese_backend.database import get_db
from diocese_backend.interface.organizations import DioceseCreate, DioceseGet, TestingCenterCreate, TestingCenterGet
from diocese_backend.interface.users import UserGet
from diocese_backend.model.auth import User
from diocese_backend.model.organization import Diocese, TestingCenter
from diocese_backend.permissions.access import AccessOperation, ResourceType, has_access
from diocese_backend.permissions.auth import require_identity
from diocese_backend.permissions.principal import Identity, derive_constraints
from diocese_backend.permissions.query_builders import ConstraintQueryBuilder

logger = logging.getLogger(__name__)

diocese_router = APIRouter()
testing_center_router = APIRouter()
user_router = APIRouter()


def _check(identity: Identity, resource: ResourceType, operation: AccessOperation, db: Session, target_id=None):
    if not has_access(identity, resource, operation, db, target_id=target_id):
        raise ForbiddenException(detail={"entity": resource.value.lower(), "operation": operation.value.lower()})


@diocese_router.get("", response_model=List[DioceseGet])
def list_dioceses(identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    _check(identity, ResourceType.DIOCESE, AccessOperation.READ, db)
    query = ConstraintQueryBuilder.build_scoped_query(Diocese, derive_constraints(identity), db)
    return query.order_by(Diocese.name).all()


@diocese_router.get("/{diocese_id}", response_model=DioceseGet)
def get_diocese(diocese_id: int, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    _check(identity, ResourceType.DIOCESE, AccessOperation.READ, db, diocese_id)

    diocese = db.query(Diocese).filter(Diocese.id == diocese_id).first()
    if diocese is None:
        raise NotFoundException()
    return diocese


@diocese_router.post("", response_model=DioceseGet, status_code=201)
def create_diocese(payload: DioceseCreate, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    if not identity.is_super_admin:
        raise ForbiddenException(detail={"entity": "diocese", "operation": "create"})

    diocese = Diocese(name=payload.name, full_name=payload.full_name)
    db.add(diocese)
    db.commit()
    db.refresh(diocese)

    logger.info(f"Diocese {diocese.id} created by user {identity.id}")
    return diocese


@diocese_router.delete("/{diocese_id}", status_code=204)
def delete_diocese(diocese_id: int, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    _check(identity, ResourceType.DIOCESE, AccessOperation.DELETE, db, diocese_id)

    diocese = db.query(Diocese).filter(Diocese.id == diocese_id).first()
    if diocese is None:
        raise NotFoundException()

    db.delete(diocese)
    db.commit()


@testing_center_router.get("", response_model=List[TestingCenterGet])
def list_testing_centers(identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    _check(identity, ResourceType.TESTING_CENTER, AccessOperation.READ, db)
    query = ConstraintQueryBuilder.build_scoped_query(TestingCenter, derive_constraints(identity), db)
    return query.order_by(TestingCenter.name).all()


@testing_center_router.get("/{testing_center_id}", response_model=TestingCenterGet)
def get_testing_center(testing_center_id: int, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):

    _check(identity, ResourceType.TESTING_CENTER, AccessOperation.READ, db, testing_center_id)

    testing_center = db.query(TestingCenter).filter(TestingCenter.id == testing_center_id).first()
    if testing_center is None:
        raise NotFoundException()
    return testing_center


@testing_center_router.post("", response_model=TestingCenterGet, status_code=201)
def create_testing_center(payload: TestingCenterCreate, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):

    diocese_id = payload.diocese_id if payload.diocese_id is not None else identity.diocese_id
    if diocese_id is None:
        raise BadRequestException("diocese_id is required")

    _check(identity, ResourceType.TESTING_CENTER, AccessOperation.WRITE, db)
    # the new center must land in a diocese the caller manages
    _check(identity, ResourceType.DIOCESE, AccessOperation.WRITE, db, diocese_id)

    if db.query(Diocese.id).filter(Diocese.id == diocese_id).first() is None:
        raise NotFoundException(detail="Diocese not found")

    testing_center = TestingCenter(name=payload.name, address=payload.address, diocese_id=diocese_id)
    db.add(testing_center)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise BadRequestException(f"Testing center '{payload.name}' already exists in this diocese")

    db.refresh(testing_center)
    return testing_center


@testing_center_router.delete("/{testing_center_id}", status_code=204)
def delete_testing_center(testing_center_id: int, identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):

    _check(identity, ResourceType.TESTING_CENTER, AccessOperation.DELETE, db, testing_center_id)

    testing_center = db.query(TestingCenter).filter(TestingCenter.id == testing_center_id).first()
    if testing_center is None:
        raise NotFoundException()

    db.delete(testing_center)
    db.commit()


@user_router.get("", response_model=List[UserGet])
def list_users(identity: Annotated[Identity, Depends(require_identity)], db: Session = Depends(get_db)):
    _check(identity, ResourceType.USER, AccessOperation.READ, db)
    query = ConstraintQueryBuilder.build_scoped_query(User, derive_constraints(identity), db)
    return query.order_by(User.id).all()
