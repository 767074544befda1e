from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: str = Field(description="user, assistant or system")
    content: str = ""

    model_config = ConfigDict(extra='allow')


class ChatGet(BaseModel):
    id: str
    name: Optional[str] = None
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChatList(BaseModel):
    id: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChatSave(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    messages: List[ChatMessage] = Field(default_factory=list)


class ChatRename(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class ChatRequest(BaseModel):
    id: UUID
    messages: List[ChatMessage] = Field(min_length=1)


class ChatResponse(BaseModel):
    id: str
    message: ChatMessage
    sql: Optional[str] = None
    result: Optional["QueryResult"] = None
    validation: Optional["QueryValidation"] = None
    should_update_chats: bool = False


class QueryRequest(BaseModel):
    sql: str = Field(min_length=1)


class CorrectQueryRequest(BaseModel):
    sql_code: str = Field(min_length=1)


class QueryResult(BaseModel):
    sql: str = Field(description="Statement that was executed, after access constraints were applied")
    columns: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)
    error: Optional[str] = None


class QueryValidation(BaseModel):
    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list, description="Issues that do not block execution")


ChatResponse.model_rebuild()
