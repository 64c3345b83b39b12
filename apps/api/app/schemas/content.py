from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class NovelRead(BaseModel):
    id: int
    user_id: str
    title: str
    genre: str
    description: str
    cover_image: str
    status: str
    is_public: bool
    is_published: bool
    admin_feedback: str
    reviewed_at: Optional[datetime]
    reviewed_by: Optional[str]
    chapter_count: int
    total_words: int
    last_chapter_at: Optional[datetime]
    novel_metadata: dict
    created_at: datetime
    updated_at: datetime


class ChapterRead(BaseModel):
    id: int
    novel_id: int
    chapter_number: int
    title: str
    content: str
    summary: str
    word_count: int
    is_published: bool
    created_at: datetime
    updated_at: datetime


class NovelDetailRead(NovelRead):
    chapters: list[ChapterRead] = Field(default_factory=list)


class NovelCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    genre: str = Field(default="", max_length=64)
    description: str = Field(default="", max_length=20000)
    cover_image: str = Field(default="", max_length=1024)
    is_public: bool = False
    is_published: bool = False
    novel_metadata: dict = Field(default_factory=dict)


class NovelUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    genre: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = Field(default=None, max_length=20000)
    cover_image: Optional[str] = Field(default=None, max_length=1024)
    is_public: Optional[bool] = None
    is_published: Optional[bool] = None
    novel_metadata: Optional[dict] = None


class NovelDeleteResult(BaseModel):
    deleted_novel_id: int
    message: str = "Novel deleted successfully"


class NovelStatusUpdateRequest(BaseModel):
    status: str = Field(min_length=1, max_length=16)
    is_public: bool = False


class NovelStatusUpdateResult(BaseModel):
    message: str
    status: str
    is_public: bool


class NovelApprovalResult(BaseModel):
    success: bool = True
    message: str


class ChapterCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(default="", max_length=500000)
    summary: str = Field(default="", max_length=20000)
    chapter_number: Optional[int] = Field(default=None, ge=1)
    is_published: bool = False


class ChapterUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, max_length=500000)
    summary: Optional[str] = Field(default=None, max_length=20000)
    is_published: Optional[bool] = None


class ChapterDeleteResult(BaseModel):
    deleted_chapter_id: int


class ChapterPublishToggleResult(BaseModel):
    chapter_id: int
    novel_id: int
    is_published: bool


class CommentRead(BaseModel):
    id: int
    user_id: Optional[str]
    novel_id: Optional[int]
    chapter_id: Optional[int]
    parent_comment_id: Optional[int]
    comment_type: str
    content: str
    is_approved: bool
    is_flagged: bool
    is_deleted: bool
    is_edited: bool
    is_pinned: bool
    reported_count: int
    likes_count: int
    dislikes_count: int
    has_liked: bool = False
    created_at: datetime
    updated_at: datetime


class CommentThreadRead(CommentRead):
    replies: list[CommentRead] = Field(default_factory=list)


class AdminCommentRead(CommentRead):
    report_reason: Optional[str]
    flag_reason: Optional[str]
    flagged_at: Optional[datetime]
    flagged_by: Optional[str]
    reviewed_at: Optional[datetime]
    reviewed_by: Optional[str]


class CommentCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    novel_id: Optional[int] = Field(default=None, ge=1)
    chapter_id: Optional[int] = Field(default=None, ge=1)
    parent_comment_id: Optional[int] = Field(default=None, ge=1)


class CommentUpdateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class CommentReportRequest(BaseModel):
    comment_id: int = Field(ge=1)
    reason: str = Field(min_length=1, max_length=1000)


class CommentActionResult(BaseModel):
    success: bool = True
    comment_id: int
    likes_count: Optional[int] = None
    dislikes_count: Optional[int] = None
    reported_count: Optional[int] = None
    is_approved: Optional[bool] = None


ReactionAction = Literal["like", "dislike"]
