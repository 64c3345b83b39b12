from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Notification(SQLModel, table=True):
    __table_args__ = (Index("ix_notification_user_read", "user_id", "is_read", "created_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    type: str = Field(index=True, max_length=64)
    title: str = Field(default="", max_length=255)
    message: str = Field(default="", max_length=2000)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class UserPreference(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True, max_length=128)
    favorite_genres: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    favorite_studios: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    preferred_content_types: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    min_rating: float = Field(default=7.0)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Bookmark(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "novel_id", "chapter_id", name="uq_bookmark_user_target"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    novel_id: int = Field(foreign_key="novel.id", index=True)
    chapter_id: Optional[int] = Field(default=None, foreign_key="chapter.id", index=True)
    note: str = Field(default="", max_length=2000)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class ReadingProgress(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "novel_id", "chapter_id", name="uq_reading_progress_target"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    novel_id: int = Field(foreign_key="novel.id", index=True)
    chapter_id: int = Field(foreign_key="chapter.id", index=True)
    progress: int = Field(default=0, ge=0, le=100)
    last_read_at: datetime = Field(default_factory=utc_now, nullable=False)


class ReadingStatus(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "novel_id", name="uq_reading_status_user_novel"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    novel_id: int = Field(foreign_key="novel.id", index=True)
    status: str = Field(max_length=16)
    last_read_chapter_id: Optional[int] = Field(default=None, foreign_key="chapter.id")
    last_read_at: datetime = Field(default_factory=utc_now, nullable=False)


class NovelView(SQLModel, table=True):
    __table_args__ = (Index("ix_novel_view_novel_ip_time", "novel_id", "ip_address", "viewed_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    novel_id: int = Field(foreign_key="novel.id", index=True)
    user_id: Optional[str] = Field(default=None, index=True, max_length=128)
    ip_address: str = Field(default="", max_length=64)
    user_agent: str = Field(default="", max_length=512)
    viewed_at: datetime = Field(default_factory=utc_now, nullable=False)
