import logging
from typing import Any, Iterable

from sqlalchemy import func
from sqlmodel import Session, select

from app.core.config import settings
from app.models.engagement import Notification
from app.services.errors import NotFoundError


_LOGGER = logging.getLogger(__name__)

NOVEL_APPROVED = "novel_approved"
NOVEL_REJECTED = "novel_rejected"
COMMENT_FLAGGED = "comment_flagged"
COMMENT_APPROVED = "comment_approved"
COMMENT_DELETED_ADMIN = "comment_deleted_admin"
COMMENT_REPLY = "comment_reply"
CHAPTER_PUBLISHED_ADMIN = "chapter_published_admin"
CHAPTER_UNPUBLISHED_ADMIN = "chapter_unpublished_admin"


def create_notification(
    db: Session,
    *,
    user_id: str | None,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> Notification | None:
    """Insert a notification for ``user_id``.

    Callers have already committed their own state change, so a failure here is
    logged and rolled back and ``None`` is returned instead of raising.
    """
    recipient = str(user_id or "").strip()
    if not recipient:
        return None
    try:
        notification = Notification(
            user_id=recipient,
            type=str(type or "").strip()[:64],
            title=str(title or "")[:255],
            message=str(message or "")[:2000],
            data=dict(data or {}),
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
    except Exception:
        _LOGGER.exception("failed to create %s notification for user=%s", type, recipient)
        db.rollback()
        return None
    return notification


def list_notifications(db: Session, *, user_id: str, limit: int | None = None) -> Iterable[Notification]:
    size = int(limit or settings.notification_list_limit)
    size = max(min(size, 200), 1)
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(size)
    )
    return db.exec(stmt).all()


def count_unread(db: Session, *, user_id: str) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id,
        Notification.is_read == False,  # noqa: E712
    )
    return int(db.exec(stmt).one() or 0)


def mark_notification_read(db: Session, *, notification_id: int, user_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    # Other users' notifications look missing rather than forbidden.
    if not notification or notification.user_id != user_id:
        raise NotFoundError("notification not found")
    if not notification.is_read:
        notification.is_read = True
        db.add(notification)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, *, user_id: str) -> int:
    rows = db.exec(
        select(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    ).all()
    for row in rows:
        row.is_read = True
        db.add(row)
    db.commit()
    return len(rows)
