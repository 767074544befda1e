from typing import Optional
from pydantic import BaseModel, Field


class ConnectionValidation(BaseModel):
    connection_string: str = Field(min_length=1)


class ApiKeyValidation(BaseModel):
    api_key: str = Field(min_length=1)


class ValidationResult(BaseModel):
    valid: bool
    message: str
    detail: Optional[str] = None
