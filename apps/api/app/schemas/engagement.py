from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    id: int
    user_id: str
    type: str
    title: str
    message: str
    data: dict
    is_read: bool
    created_at: datetime


class UnreadCountRead(BaseModel):
    unread_count: int


class MarkAllReadResult(BaseModel):
    updated: int


class UserPreferenceRead(BaseModel):
    user_id: str
    favorite_genres: list[str]
    favorite_studios: list[str]
    preferred_content_types: list[str]
    min_rating: float
    updated_at: Optional[datetime] = None


class UserPreferenceUpdateRequest(BaseModel):
    favorite_genres: Optional[list[str]] = Field(default=None, max_length=50)
    favorite_studios: Optional[list[str]] = Field(default=None, max_length=50)
    preferred_content_types: Optional[list[str]] = Field(default=None, max_length=50)
    min_rating: Optional[float] = Field(default=None, ge=0, le=10)


class BookmarkRead(BaseModel):
    id: int
    user_id: str
    novel_id: int
    chapter_id: Optional[int]
    note: str
    created_at: datetime
    updated_at: datetime


class BookmarkUpsertRequest(BaseModel):
    novel_id: int = Field(ge=1)
    chapter_id: Optional[int] = Field(default=None, ge=1)
    note: str = Field(default="", max_length=2000)


class BookmarkUpdateRequest(BaseModel):
    note: str = Field(default="", max_length=2000)


class BookmarkDeleteResult(BaseModel):
    deleted_bookmark_id: int


class ReadingProgressRead(BaseModel):
    id: int
    user_id: str
    novel_id: int
    chapter_id: int
    progress: int
    last_read_at: datetime


class ReadingProgressUpsertRequest(BaseModel):
    novel_id: int = Field(ge=1)
    chapter_id: int = Field(ge=1)
    progress: int = Field(ge=0, le=100)


class ReadingProgressDeleteResult(BaseModel):
    deleted: int


class ReadingStatusRead(BaseModel):
    id: int
    user_id: str
    novel_id: int
    status: str
    last_read_chapter_id: Optional[int] = None
    last_read_at: datetime


class ReadingStatusUpsertRequest(BaseModel):
    novel_id: int = Field(ge=1)
    status: str = Field(min_length=1, max_length=16)
    last_read_chapter_id: Optional[int] = Field(default=None, ge=1)


class ReadingStatusDeleteResult(BaseModel):
    deleted: int


class NovelViewCreateRequest(BaseModel):
    novel_id: int = Field(ge=1)


class NovelViewRecordResult(BaseModel):
    success: bool = True
    recorded: bool
    message: str = ""


class NovelViewStats(BaseModel):
    total_views: int
    unique_users: int
    unique_ips: int
