from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, Index, Text
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Character(SQLModel, table=True):
    __table_args__ = (Index("ix_character_public_active", "is_public", "is_active"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    creator_id: str = Field(index=True, max_length=128)
    name: str = Field(max_length=255)
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    content_source: str = Field(default="", max_length=255)
    personality: str = Field(default="", sa_column=Column(Text, nullable=False))
    background: str = Field(default="", sa_column=Column(Text, nullable=False))
    notable_quotes: str = Field(default="", sa_column=Column(Text, nullable=False))
    dialogues: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    image_url: Optional[str] = Field(default=None, max_length=1024)
    is_public: bool = Field(default=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class ChatSession(SQLModel, table=True):
    # (user_id, character_id) is intentionally not unique; lookups take the newest row.
    __table_args__ = (Index("ix_chat_session_user_character", "user_id", "character_id", "created_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(unique=True, index=True, max_length=64)
    user_id: str = Field(index=True, max_length=128)
    character_id: int = Field(foreign_key="character.id", index=True)
    messages: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)
