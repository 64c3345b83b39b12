import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import func
from sqlmodel import Session, select

from app.models.content import Chapter, Comment, Novel
from app.models.engagement import Bookmark, NovelView, ReadingProgress, ReadingStatus
from app.services import notification_service
from app.services.comment_service import purge_comments
from app.services.errors import NotFoundError, PermissionDeniedError


_LOGGER = logging.getLogger(__name__)
NOVEL_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected", "draft")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def count_words(text: str | None) -> int:
    return len(str(text or "").split())


def _normalize_title(title: str | None, *, field: str = "title") -> str:
    value = str(title or "").strip()
    if not value:
        raise ValueError(f"{field} is required")
    return value[:255]


def _normalize_status(status: str | None) -> str:
    value = str(status or "").strip().lower()
    if not value:
        raise ValueError("status is required")
    if value not in NOVEL_STATUSES:
        raise ValueError("invalid status")
    return value


def require_novel(db: Session, novel_id: int) -> Novel:
    novel = db.get(Novel, novel_id)
    if not novel:
        raise NotFoundError("novel not found")
    return novel


def require_owned_novel(db: Session, *, novel_id: int, user_id: str, is_admin: bool = False) -> Novel:
    novel = require_novel(db, novel_id)
    if not is_admin and novel.user_id != user_id:
        raise PermissionDeniedError("only the author can modify this novel")
    return novel


def can_view_novel(novel: Novel, *, viewer_id: str | None, is_admin: bool = False) -> bool:
    if is_admin or (viewer_id and novel.user_id == viewer_id):
        return True
    return bool(novel.is_public and novel.is_published)


def list_public_novels(db: Session, *, genre: str | None = None, limit: int = 50) -> Iterable[Novel]:
    size = max(min(int(limit), 200), 1)
    stmt = select(Novel).where(
        Novel.is_public == True,  # noqa: E712
        Novel.is_published == True,  # noqa: E712
    )
    if genre:
        stmt = stmt.where(Novel.genre == genre)
    stmt = stmt.order_by(Novel.updated_at.desc(), Novel.id.desc()).limit(size)
    return db.exec(stmt).all()


def list_user_novels(db: Session, *, user_id: str) -> Iterable[Novel]:
    stmt = select(Novel).where(Novel.user_id == user_id).order_by(Novel.updated_at.desc(), Novel.id.desc())
    return db.exec(stmt).all()


def create_novel(
    db: Session,
    *,
    user_id: str,
    title: str,
    genre: str = "",
    description: str = "",
    cover_image: str = "",
    is_public: bool = False,
    is_published: bool = False,
    novel_metadata: dict[str, Any] | None = None,
) -> Novel:
    now = _utc_now()
    novel = Novel(
        user_id=user_id,
        title=_normalize_title(title),
        genre=str(genre or "").strip()[:64],
        description=str(description or "").strip(),
        cover_image=str(cover_image or "").strip()[:1024],
        is_public=bool(is_public),
        is_published=bool(is_published),
        novel_metadata=dict(novel_metadata or {}),
        created_at=now,
        updated_at=now,
    )
    db.add(novel)
    db.commit()
    db.refresh(novel)
    return novel


def update_novel(db: Session, *, novel_id: int, user_id: str, is_admin: bool = False, **changes: Any) -> Novel:
    novel = require_owned_novel(db, novel_id=novel_id, user_id=user_id, is_admin=is_admin)
    if changes.get("title") is not None:
        novel.title = _normalize_title(changes["title"])
    for field_name, limit in (("genre", 64), ("cover_image", 1024)):
        if changes.get(field_name) is not None:
            setattr(novel, field_name, str(changes[field_name]).strip()[:limit])
    if changes.get("description") is not None:
        novel.description = str(changes["description"]).strip()
    for flag in ("is_public", "is_published"):
        if changes.get(flag) is not None:
            setattr(novel, flag, bool(changes[flag]))
    if changes.get("novel_metadata") is not None:
        novel.novel_metadata = dict(changes["novel_metadata"])
    novel.updated_at = _utc_now()
    db.add(novel)
    db.commit()
    db.refresh(novel)
    return novel


def _delete_novel_rows(db: Session, novel: Novel) -> None:
    novel_id = int(novel.id)
    chapter_ids = [int(item) for item in db.exec(select(Chapter.id).where(Chapter.novel_id == novel_id)).all()]

    comment_stmt = select(Comment.id).where(Comment.novel_id == novel_id)
    if chapter_ids:
        comment_stmt = select(Comment.id).where(
            (Comment.novel_id == novel_id) | (Comment.chapter_id.in_(chapter_ids))
        )
    comment_ids = sorted(int(item) for item in db.exec(comment_stmt).all())
    # Replies always carry higher ids than their parents.
    purge_comments(db, comment_ids)

    for model in (Bookmark, ReadingProgress, ReadingStatus, NovelView):
        for row in db.exec(select(model).where(model.novel_id == novel_id)).all():
            db.delete(row)
    for chapter in db.exec(select(Chapter).where(Chapter.novel_id == novel_id)).all():
        db.delete(chapter)
    db.flush()
    db.delete(novel)


def delete_novel(db: Session, *, novel_id: int, user_id: str, is_admin: bool = False) -> int:
    novel = require_owned_novel(db, novel_id=novel_id, user_id=user_id, is_admin=is_admin)
    _delete_novel_rows(db, novel)
    db.commit()
    _LOGGER.info("novel %s deleted by %s", novel_id, user_id)
    return novel_id


def _refresh_novel_counters(db: Session, novel: Novel) -> None:
    chapter_count, total_words = db.exec(
        select(func.count(Chapter.id), func.coalesce(func.sum(Chapter.word_count), 0)).where(
            Chapter.novel_id == novel.id
        )
    ).one()
    novel.chapter_count = int(chapter_count or 0)
    novel.total_words = int(total_words or 0)
    novel.updated_at = _utc_now()
    db.add(novel)


def list_chapters(db: Session, *, novel_id: int, published_only: bool = False) -> Iterable[Chapter]:
    stmt = select(Chapter).where(Chapter.novel_id == novel_id)
    if published_only:
        stmt = stmt.where(Chapter.is_published == True)  # noqa: E712
    return db.exec(stmt.order_by(Chapter.chapter_number.asc(), Chapter.id.asc())).all()


def require_chapter(db: Session, *, novel_id: int, chapter_id: int) -> Chapter:
    chapter = db.get(Chapter, chapter_id)
    if not chapter or chapter.novel_id != novel_id:
        raise NotFoundError("chapter not found")
    return chapter


def create_chapter(
    db: Session,
    *,
    novel_id: int,
    user_id: str,
    title: str,
    content: str = "",
    summary: str = "",
    chapter_number: int | None = None,
    is_published: bool = False,
    is_admin: bool = False,
) -> Chapter:
    novel = require_owned_novel(db, novel_id=novel_id, user_id=user_id, is_admin=is_admin)
    if chapter_number is None:
        current_max = db.exec(select(func.max(Chapter.chapter_number)).where(Chapter.novel_id == novel_id)).one()
        chapter_number = int(current_max or 0) + 1
    elif int(chapter_number) < 1:
        raise ValueError("chapter_number must be >= 1")
    duplicate = db.exec(
        select(Chapter).where(Chapter.novel_id == novel_id, Chapter.chapter_number == int(chapter_number))
    ).first()
    if duplicate:
        raise ValueError(f"chapter {chapter_number} already exists")

    now = _utc_now()
    chapter = Chapter(
        novel_id=novel_id,
        chapter_number=int(chapter_number),
        title=_normalize_title(title),
        content=str(content or ""),
        summary=str(summary or "").strip(),
        word_count=count_words(content),
        is_published=bool(is_published),
        created_at=now,
        updated_at=now,
    )
    db.add(chapter)
    db.flush()
    _refresh_novel_counters(db, novel)
    novel.last_chapter_at = now
    db.commit()
    db.refresh(chapter)
    return chapter


def update_chapter(
    db: Session,
    *,
    novel_id: int,
    chapter_id: int,
    user_id: str,
    is_admin: bool = False,
    title: str | None = None,
    content: str | None = None,
    summary: str | None = None,
    is_published: bool | None = None,
) -> Chapter:
    novel = require_owned_novel(db, novel_id=novel_id, user_id=user_id, is_admin=is_admin)
    chapter = require_chapter(db, novel_id=novel_id, chapter_id=chapter_id)
    if title is not None:
        chapter.title = _normalize_title(title)
    if content is not None:
        chapter.content = str(content)
        chapter.word_count = count_words(content)
    if summary is not None:
        chapter.summary = str(summary).strip()
    if is_published is not None:
        chapter.is_published = bool(is_published)
    chapter.updated_at = _utc_now()
    db.add(chapter)
    db.flush()
    _refresh_novel_counters(db, novel)
    novel.last_chapter_at = chapter.updated_at
    db.commit()
    db.refresh(chapter)
    return chapter


def delete_chapter(db: Session, *, novel_id: int, chapter_id: int, user_id: str, is_admin: bool = False) -> int:
    novel = require_owned_novel(db, novel_id=novel_id, user_id=user_id, is_admin=is_admin)
    chapter = require_chapter(db, novel_id=novel_id, chapter_id=chapter_id)
    comment_ids = sorted(int(item) for item in db.exec(select(Comment.id).where(Comment.chapter_id == chapter_id)).all())
    purge_comments(db, comment_ids)
    for model in (Bookmark, ReadingProgress):
        for row in db.exec(select(model).where(model.chapter_id == chapter_id)).all():
            db.delete(row)
    db.delete(chapter)
    db.flush()
    _refresh_novel_counters(db, novel)
    db.commit()
    return chapter_id


def approve_novel(db: Session, *, novel_id: int, admin_id: str, feedback: str | None = "") -> Novel:
    novel = require_novel(db, novel_id)
    novel.status = "approved"
    novel.admin_feedback = str(feedback or "").strip()
    novel.reviewed_at = _utc_now()
    novel.reviewed_by = admin_id
    novel.updated_at = novel.reviewed_at
    db.add(novel)
    db.commit()
    db.refresh(novel)

    notification_service.create_notification(
        db,
        user_id=novel.user_id,
        type=notification_service.NOVEL_APPROVED,
        title="Novel approved",
        message=f'Your novel "{novel.title}" has been approved.',
        data={"novel_id": novel.id, "novel_title": novel.title, "feedback": novel.admin_feedback},
    )
    return novel


def reject_novel(db: Session, *, novel_id: int, admin_id: str, feedback: str | None) -> Novel:
    feedback_text = str(feedback or "").strip()
    if not feedback_text:
        raise ValueError("Feedback is required when rejecting a novel")
    novel = require_novel(db, novel_id)
    novel.status = "rejected"
    novel.admin_feedback = feedback_text
    novel.reviewed_at = _utc_now()
    novel.reviewed_by = admin_id
    novel.is_published = False
    novel.updated_at = novel.reviewed_at
    db.add(novel)
    db.commit()
    db.refresh(novel)

    notification_service.create_notification(
        db,
        user_id=novel.user_id,
        type=notification_service.NOVEL_REJECTED,
        title="Novel rejected",
        message=f'Your novel "{novel.title}" was not approved. Feedback: {feedback_text}',
        data={"novel_id": novel.id, "novel_title": novel.title, "feedback": feedback_text},
    )
    return novel


def review_novel(db: Session, *, novel_id: int, admin_id: str, status: str, reason: str | None = None) -> Novel:
    """Apply an ``approved`` or ``rejected`` decision from the combined review form.

    ``reason`` is optional for approval and required for rejection, which also
    takes the novel out of the public listing.
    """
    decision = str(status or "").strip().lower()
    if decision == "approved":
        return approve_novel(db, novel_id=novel_id, admin_id=admin_id, feedback=reason)
    if decision == "rejected":
        novel = reject_novel(db, novel_id=novel_id, admin_id=admin_id, feedback=reason)
        if novel.is_public:
            novel.is_public = False
            db.add(novel)
            db.commit()
            db.refresh(novel)
        return novel
    raise ValueError("Invalid status")


def update_novel_status(
    db: Session,
    *,
    novel_id: int,
    admin_id: str,
    status: str,
    is_public: bool | None = None,
) -> Novel:
    """Set the review status directly. Unlike approve/reject this sends no notification."""
    normalized = _normalize_status(status)
    novel = require_novel(db, novel_id)
    novel.status = normalized
    novel.is_public = bool(is_public) if normalized == "approved" else False
    if normalized == "pending":
        novel.reviewed_at = None
        novel.reviewed_by = None
    else:
        novel.reviewed_at = _utc_now()
        novel.reviewed_by = admin_id
    novel.updated_at = _utc_now()
    db.add(novel)
    db.commit()
    db.refresh(novel)
    return novel


def toggle_chapter_publish(db: Session, *, chapter_id: int, admin_id: str) -> Chapter:
    chapter = db.get(Chapter, chapter_id)
    if not chapter:
        raise NotFoundError("chapter not found")
    now = _utc_now()
    chapter.is_published = not chapter.is_published
    chapter.updated_at = now
    db.add(chapter)
    novel = db.get(Novel, chapter.novel_id)
    if novel and chapter.is_published:
        novel.last_chapter_at = now
        db.add(novel)
    db.commit()
    db.refresh(chapter)
    _LOGGER.info("admin %s set chapter %s published=%s", admin_id, chapter_id, chapter.is_published)

    if novel:
        verb = "published" if chapter.is_published else "unpublished"
        notification_service.create_notification(
            db,
            user_id=novel.user_id,
            type=(
                notification_service.CHAPTER_PUBLISHED_ADMIN
                if chapter.is_published
                else notification_service.CHAPTER_UNPUBLISHED_ADMIN
            ),
            title=f"Chapter {verb}",
            message=f'An admin has {verb} your chapter "{chapter.title}" in "{novel.title}".',
            data={
                "novel_id": novel.id,
                "novel_title": novel.title,
                "chapter_id": chapter.id,
                "chapter_title": chapter.title,
                "chapter_number": chapter.chapter_number,
            },
        )
    return chapter
