from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class DioceseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="Short diocese name")
    full_name: Optional[str] = Field(None, max_length=1024, description="Official diocese name")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Name cannot be blank')
        return v.strip()


class DioceseGet(BaseModel):
    id: int
    name: str
    full_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TestingCenterCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="Testing center name")
    address: Optional[str] = Field(None, max_length=1024, description="Postal address")
    diocese_id: Optional[int] = Field(None, description="Owning diocese, defaults to the caller's diocese")


class TestingCenterGet(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    diocese_id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
