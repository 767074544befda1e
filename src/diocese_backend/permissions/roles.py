"""
Role vocabulary of the upstream school administration system and its
reduction onto the three roles used by this backend.
"""

import logging
from enum import Enum
from typing import Optional, Tuple, Union

logger = logging.getLogger(__name__)


class InternalRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    DIOCESE_MANAGER = "diocese_manager"
    SCHOOL_MANAGER = "school_manager"


class ExternalRole(str, Enum):
    """Roles as named by the upstream system. Declaration order is the numeric code stored in users.role."""
    ARK_ADMIN = "Ark Admin"
    DIOCESE_EXECUTIVE = "Diocese Executive"
    DIOCESE_ADMIN = "Diocese Admin"
    CENTER_ADMIN = "Center Admin"
    CENTER_DATA_ADMIN = "Center Data Admin"
    TEACHER = "Teacher"
    PROCTOR = "Proctor"
    STUDENT = "Student"
    CATECHIST_CANDIDATE = "Catechist Candidate"

    @property
    def code(self) -> int:
        return list(ExternalRole).index(self)


_EXTERNAL_TO_INTERNAL = {
    ExternalRole.ARK_ADMIN: InternalRole.SUPER_ADMIN,
    ExternalRole.DIOCESE_EXECUTIVE: InternalRole.DIOCESE_MANAGER,
    ExternalRole.DIOCESE_ADMIN: InternalRole.DIOCESE_MANAGER,
    ExternalRole.CENTER_ADMIN: InternalRole.SCHOOL_MANAGER,
    ExternalRole.CENTER_DATA_ADMIN: InternalRole.SCHOOL_MANAGER,
    ExternalRole.TEACHER: InternalRole.SCHOOL_MANAGER,
    ExternalRole.PROCTOR: InternalRole.SCHOOL_MANAGER,
}

# Roles that exist upstream but are not meant to use this application
NON_USER_FACING_ROLES = frozenset({ExternalRole.STUDENT, ExternalRole.CATECHIST_CANDIDATE})

# Least privileged internal role, used for anything unmapped
DEFAULT_INTERNAL_ROLE = InternalRole.SCHOOL_MANAGER


def _coerce_external(external_role: Union[ExternalRole, str, None]) -> Optional[ExternalRole]:
    if isinstance(external_role, ExternalRole):
        return external_role
    try:
        return ExternalRole(external_role)
    except ValueError:
        return None


def map_external_role(external_role: Union[ExternalRole, str, None]) -> InternalRole:
    """Map an upstream role name to an internal role. Never raises."""
    role = _coerce_external(external_role)
    return _EXTERNAL_TO_INTERNAL.get(role, DEFAULT_INTERNAL_ROLE)


def role_should_have_access(external_role: Union[ExternalRole, str, None]) -> bool:
    role = _coerce_external(external_role)
    return role not in NON_USER_FACING_ROLES


def external_role_from_code(code: Optional[int]) -> Optional[ExternalRole]:
    if code is None:
        return None
    roles = list(ExternalRole)
    if 0 <= code < len(roles):
        return roles[code]
    return None


def internal_role_from_code(code: Optional[int]) -> InternalRole:
    external = external_role_from_code(code)
    if external is None:
        logger.warning(f"Unknown role code {code}, falling back to {DEFAULT_INTERNAL_ROLE.value}")
    return map_external_role(external)


def check_external_user_access(role_name: Optional[str]) -> Optional[Tuple[bool, InternalRole]]:
    """Return (should_have_access, mapped_role) for an upstream role name, or None when no role is given."""
    if not role_name:
        return None
    return role_should_have_access(role_name), map_external_role(role_name)
