import logging
from textwrap import dedent
from typing import Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from diocese_backend.permissions.roles import InternalRole

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """Caller resolved for the current request"""
    id: int
    email: Optional[str] = None
    username: Optional[str] = None
    role: Union[InternalRole, str]
    diocese_id: Optional[int] = None
    testing_center_id: Optional[int] = None
    provider: Literal["db", "provider"] = "db"

    @property
    def is_super_admin(self) -> bool:
        return self.role == InternalRole.SUPER_ADMIN

    def has_role(self, *roles: InternalRole) -> bool:
        return self.role in roles


class AccessConstraint(BaseModel):
    """Row-level filter that every query issued on behalf of an identity must satisfy"""
    model_config = ConfigDict(frozen=True)

    has_constraints: bool = False
    diocese_id: Optional[int] = None
    testing_center_id: Optional[int] = None
    must_include_diocese_filter: bool = False
    must_include_testing_center_filter: bool = False
    description: str = Field(default="", description="Human readable summary of the restriction")


def derive_constraints(identity: Optional[Identity]) -> AccessConstraint:

    if identity is None:
        logger.warning("No identity available for query constraints")
        return AccessConstraint(
            has_constraints=False,
            description="No authenticated user found."
        )

    if identity.role == InternalRole.SUPER_ADMIN:
        return AccessConstraint(
            has_constraints=False,
            description="You have full access to all data as an Ark Admin."
        )

    elif identity.role == InternalRole.DIOCESE_MANAGER:
        return AccessConstraint(
            has_constraints=True,
            diocese_id=identity.diocese_id,
            must_include_diocese_filter=True,
            must_include_testing_center_filter=False,
            description=f"You can only access data for your diocese (diocese_id={identity.diocese_id})."
        )

    elif identity.role == InternalRole.SCHOOL_MANAGER:
        return AccessConstraint(
            has_constraints=True,
            diocese_id=identity.diocese_id,
            testing_center_id=identity.testing_center_id,
            must_include_diocese_filter=True,
            must_include_testing_center_filter=True,
            description=(
                f"You can only access data for your testing center (testing_center_id={identity.testing_center_id}) "
                f"in your diocese (diocese_id={identity.diocese_id})."
            )
        )

    role = identity.role.value if isinstance(identity.role, InternalRole) else identity.role
    logger.warning(f"Unknown role type: {role}")
    return AccessConstraint(
        has_constraints=False,
        description=f"Unknown role: {role}"
    )


def access_restriction_message(identity: Optional[Identity]) -> str:
    return derive_constraints(identity).description


def role_prompt_instructions(identity: Optional[Identity]) -> str:
    """Instructions for the LLM describing which rows the caller may query."""

    if identity is None:
        return "You must be logged in to use this feature."

    if identity.role == InternalRole.SUPER_ADMIN:
        return dedent("""
            You have full access to all data in the system as an Ark Admin.
            You can query any data across all dioceses and testing centers.
        """).strip()

    if identity.role == InternalRole.DIOCESE_MANAGER:
        return dedent(f"""
            IMPORTANT: You are a Diocese Admin with access restricted to Diocese ID: {identity.diocese_id}.

            Any SQL queries you generate MUST include a WHERE clause restricting data to diocese_id = {identity.diocese_id}.

            If the user asks for data without specifying a diocese, always limit to their diocese.

            Example proper query:
            SELECT * FROM testing_centers WHERE diocese_id = {identity.diocese_id};

            Example improper query (DO NOT DO THIS):
            SELECT * FROM testing_centers;
        """).strip()

    if identity.role == InternalRole.SCHOOL_MANAGER:
        return dedent(f"""
            IMPORTANT: You are a Center Admin with access restricted to Testing Center ID: {identity.testing_center_id} in Diocese ID: {identity.diocese_id}.

            Any SQL queries you generate MUST include WHERE clauses restricting data to:
            1. diocese_id = {identity.diocese_id} AND
            2. testing_center_id = {identity.testing_center_id}

            If the user asks for data without specifying a testing center, always limit to their testing center.

            Example proper query:
            SELECT * FROM students WHERE testing_center_id = {identity.testing_center_id} AND diocese_id = {identity.diocese_id};

            Example improper query (DO NOT DO THIS):
            SELECT * FROM students;
        """).strip()

    return "Your role does not have sufficient permissions to access this data."


def add_role_restrictions_to_prompt(base_prompt: str, identity: Optional[Identity]) -> str:
    return (
        f"{base_prompt}\n\n"
        "===== ROLE-BASED ACCESS RESTRICTIONS =====\n"
        f"{role_prompt_instructions(identity)}\n"
        "===========================================\n\n"
        "Always follow these access restrictions when generating SQL queries or analyzing data.\n"
    )
