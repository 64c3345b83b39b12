from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ChatMessageRead(BaseModel):
    role: str
    content: str
    timestamp: str


class ChatSessionCreateRequest(BaseModel):
    character_id: int = Field(ge=1)


class ChatSessionStartResponse(BaseModel):
    session_id: str
    messages: list[ChatMessageRead]
    continued: bool


class ChatSessionRead(BaseModel):
    session_id: str
    user_id: str
    character_id: int
    message_count: int
    created_at: datetime
    updated_at: datetime


class ChatSessionDeleteResult(BaseModel):
    deleted_session_id: str


class ChatHistoryResponse(BaseModel):
    session_id: str
    messages: list[ChatMessageRead]


class ChatRequest(BaseModel):
    character_id: int = Field(ge=1)
    session_id: str = Field(min_length=1, max_length=64)
    user_input: str = Field(min_length=1, max_length=20000)


class ChatResponse(BaseModel):
    response: str
    history: list[ChatMessageRead]


class CharacterRead(BaseModel):
    id: int
    creator_id: str
    name: str
    description: str
    content_source: str
    personality: str
    background: str
    notable_quotes: str
    dialogues: list[str]
    image_url: Optional[str] = None
    is_public: bool
    is_active: bool
    created_at: datetime


class CharacterCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=20000)
    content_source: str = Field(default="", max_length=255)
    personality: str = Field(default="", max_length=20000)
    background: str = Field(default="", max_length=20000)
    notable_quotes: str = Field(default="", max_length=20000)
    dialogues: list[str] = Field(default_factory=list, max_length=32)
    image_url: Optional[str] = Field(default=None, max_length=1024)
    is_public: bool = True


class CharacterDeleteResult(BaseModel):
    deleted_character_id: int
