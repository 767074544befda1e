from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field

from diocese_backend.permissions.roles import external_role_from_code, internal_role_from_code


class UserGet(BaseModel):
    id: int
    uuid: Optional[str] = None
    username: Optional[str] = None
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[int] = Field(None, description="Upstream role code")
    diocese_id: Optional[int] = None
    testing_center_id: Optional[int] = None
    deactivate: bool = False
    sign_in_count: int = 0
    current_sign_in_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def role_name(self) -> Optional[str]:
        external = external_role_from_code(self.role)
        return external.value if external is not None else None

    @computed_field
    @property
    def app_role(self) -> str:
        return internal_role_from_code(self.role).value


class LoginForm(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
