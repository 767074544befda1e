"""
Resource level permission matrix for the management dashboards.

Row scoping of list queries is handled by ``query_builders``; the checks here
answer whether a role may perform an operation at all and, for a concrete
diocese, testing center or user, whether it owns that target. Anything not
owned explicitly is denied.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Union
from sqlalchemy.orm import Session

from diocese_backend.model.auth import User
from diocese_backend.model.organization import TestingCenter
from diocese_backend.permissions.principal import Identity
from diocese_backend.permissions.roles import InternalRole

logger = logging.getLogger(__name__)


class AccessOperation(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    DELETE = "DELETE"


class ResourceType(str, Enum):
    DIOCESE = "DIOCESE"
    TESTING_CENTER = "TESTING_CENTER"
    USER = "USER"
    STUDENT = "STUDENT"
    TEST_RESULTS = "TEST_RESULTS"


_ALL_ROLES = [InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER, InternalRole.SCHOOL_MANAGER]

ROLE_PERMISSIONS: Dict[ResourceType, Dict[AccessOperation, Union[List[InternalRole], Dict[InternalRole, List[InternalRole]]]]] = {
    ResourceType.DIOCESE: {
        AccessOperation.READ: [InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER],
        AccessOperation.WRITE: [InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER],
        AccessOperation.DELETE: [InternalRole.SUPER_ADMIN],
    },
    ResourceType.TESTING_CENTER: {
        AccessOperation.READ: _ALL_ROLES,
        AccessOperation.WRITE: [InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER],
        AccessOperation.DELETE: [InternalRole.SUPER_ADMIN, InternalRole.DIOCESE_MANAGER],
    },
    ResourceType.USER: {
        AccessOperation.READ: _ALL_ROLES,
        # manager role -> roles it may manage
        AccessOperation.WRITE: {
            InternalRole.SUPER_ADMIN: _ALL_ROLES,
            InternalRole.DIOCESE_MANAGER: [InternalRole.DIOCESE_MANAGER, InternalRole.SCHOOL_MANAGER],
            InternalRole.SCHOOL_MANAGER: [InternalRole.SCHOOL_MANAGER],
        },
        AccessOperation.DELETE: [InternalRole.SUPER_ADMIN],
    },
    ResourceType.STUDENT: {
        AccessOperation.READ: _ALL_ROLES,
        AccessOperation.WRITE: _ALL_ROLES,
        AccessOperation.DELETE: _ALL_ROLES,
    },
    ResourceType.TEST_RESULTS: {
        AccessOperation.READ: _ALL_ROLES,
        AccessOperation.WRITE: _ALL_ROLES,
        AccessOperation.DELETE: [InternalRole.SUPER_ADMIN],
    },
}


def role_permitted(role: Union[InternalRole, str], resource: ResourceType, operation: AccessOperation,
                   target_role: Optional[InternalRole] = None) -> bool:

    allowed = ROLE_PERMISSIONS[resource][operation]

    if isinstance(allowed, dict):
        manageable = next((roles for manager, roles in allowed.items() if manager == role), [])
        if not manageable:
            return False
        return target_role is None or target_role in manageable

    return role in allowed


def has_access(identity: Optional[Identity],
               resource: ResourceType,
               operation: AccessOperation,
               db: Session,
               target_id: Optional[int] = None,
               target_role: Optional[InternalRole] = None) -> bool:

    if identity is None:
        return False

    if identity.role == InternalRole.SUPER_ADMIN:
        return True

    if not role_permitted(identity.role, resource, operation, target_role):
        logger.info(f"Role {identity.role} may not {operation.value} {resource.value}")
        return False

    # list operations are scoped by the query builders
    if target_id is None:
        return True

    if identity.role == InternalRole.DIOCESE_MANAGER:

        if identity.diocese_id is None:
            return False

        if resource == ResourceType.DIOCESE:
            return target_id == identity.diocese_id

        if resource == ResourceType.TESTING_CENTER:
            diocese_id = db.query(TestingCenter.diocese_id).filter(TestingCenter.id == target_id).scalar()
            return diocese_id == identity.diocese_id

        if resource == ResourceType.USER:
            diocese_id = db.query(User.diocese_id).filter(User.id == target_id).scalar()
            return diocese_id == identity.diocese_id

    elif identity.role == InternalRole.SCHOOL_MANAGER:

        if resource == ResourceType.TESTING_CENTER:
            return identity.testing_center_id is not None and target_id == identity.testing_center_id

    logger.info(f"Denied {operation.value} on {resource.value} {target_id} for user {identity.id}")
    return False
