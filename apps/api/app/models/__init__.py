from app.models.chat import Character, ChatSession
from app.models.content import (
    Chapter,
    Comment,
    CommentReaction,
    CommentReport,
    Novel,
)
from app.models.engagement import (
    Bookmark,
    Notification,
    NovelView,
    ReadingProgress,
    ReadingStatus,
    UserPreference,
)

__all__ = [
    "Character",
    "ChatSession",
    "Novel",
    "Chapter",
    "Comment",
    "CommentReport",
    "CommentReaction",
    "Notification",
    "UserPreference",
    "Bookmark",
    "ReadingProgress",
    "ReadingStatus",
    "NovelView",
]
