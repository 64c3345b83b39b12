from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Novel(SQLModel, table=True):
    __table_args__ = (Index("ix_novel_public_published", "is_public", "is_published", "updated_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    title: str = Field(max_length=255)
    genre: str = Field(default="", max_length=64)
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    cover_image: str = Field(default="", max_length=1024)
    status: str = Field(default="pending", index=True, max_length=16)
    is_public: bool = Field(default=False)
    is_published: bool = Field(default=False)
    admin_feedback: str = Field(default="", sa_column=Column(Text, nullable=False))
    reviewed_at: Optional[datetime] = Field(default=None)
    reviewed_by: Optional[str] = Field(default=None, max_length=128)
    chapter_count: int = Field(default=0)
    total_words: int = Field(default=0)
    last_chapter_at: Optional[datetime] = Field(default=None)
    novel_metadata: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Chapter(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("novel_id", "chapter_number", name="uq_chapter_novel_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    novel_id: int = Field(foreign_key="novel.id", index=True)
    chapter_number: int = Field(default=1, ge=1, index=True)
    title: str = Field(default="", max_length=255)
    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    summary: str = Field(default="", sa_column=Column(Text, nullable=False))
    word_count: int = Field(default=0)
    is_published: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Comment(SQLModel, table=True):
    __table_args__ = (
        Index("ix_comment_novel_parent", "novel_id", "parent_comment_id"),
        Index("ix_comment_chapter_parent", "chapter_id", "parent_comment_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[str] = Field(default=None, index=True, max_length=128)
    novel_id: Optional[int] = Field(default=None, foreign_key="novel.id", index=True)
    chapter_id: Optional[int] = Field(default=None, foreign_key="chapter.id", index=True)
    parent_comment_id: Optional[int] = Field(default=None, foreign_key="comment.id", index=True)
    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    is_approved: bool = Field(default=True, index=True)
    is_flagged: bool = Field(default=False, index=True)
    is_deleted: bool = Field(default=False)
    is_edited: bool = Field(default=False)
    is_pinned: bool = Field(default=False)
    reported_count: int = Field(default=0)
    report_reason: Optional[str] = Field(default=None, max_length=1000)
    flag_reason: Optional[str] = Field(default=None, max_length=1000)
    flagged_at: Optional[datetime] = Field(default=None)
    flagged_by: Optional[str] = Field(default=None, max_length=128)
    reviewed_at: Optional[datetime] = Field(default=None)
    reviewed_by: Optional[str] = Field(default=None, max_length=128)
    likes_count: int = Field(default=0)
    dislikes_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class CommentReport(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("comment_id", "user_id", name="uq_comment_report_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    comment_id: int = Field(foreign_key="comment.id", index=True)
    user_id: str = Field(index=True, max_length=128)
    reason: str = Field(default="", max_length=1000)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class CommentReaction(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("comment_id", "user_id", name="uq_comment_reaction_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    comment_id: int = Field(foreign_key="comment.id", index=True)
    user_id: str = Field(index=True, max_length=128)
    reaction_type: str = Field(max_length=16)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
