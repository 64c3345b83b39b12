import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlmodel import Session, select

from app.core.config import settings
from app.models.content import Chapter, Comment, CommentReaction, CommentReport, Novel
from app.services import notification_service
from app.services.errors import DuplicateActionError, NotFoundError, PermissionDeniedError


_LOGGER = logging.getLogger(__name__)
REACTION_TYPES: frozenset[str] = frozenset({"like", "dislike"})
MAX_COMMENT_CHARS = 5000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def comment_type(comment: Comment) -> str:
    return "novel" if comment.novel_id is not None else "chapter"


def _normalize_content(content: str | None) -> str:
    text = str(content or "").strip()
    if not text:
        raise ValueError("content is required")
    if len(text) > MAX_COMMENT_CHARS:
        raise ValueError(f"content exceeds {MAX_COMMENT_CHARS} characters")
    return text


def _normalize_reaction(action: str | None) -> str:
    value = str(action or "").strip().lower()
    if value not in REACTION_TYPES:
        raise ValueError("invalid action")
    return value


def _resolve_target(novel_id: int | None, chapter_id: int | None) -> tuple[int | None, int | None]:
    if novel_id is None and chapter_id is None:
        raise ValueError("novel_id or chapter_id is required")
    if novel_id is not None and chapter_id is not None:
        raise ValueError("cannot post to both novel and chapter")
    return novel_id, chapter_id


def require_comment(db: Session, comment_id: int) -> Comment:
    comment = db.get(Comment, comment_id)
    if not comment:
        raise NotFoundError("comment not found")
    return comment


def _require_live_comment(db: Session, comment_id: int) -> Comment:
    comment = require_comment(db, comment_id)
    if comment.is_deleted:
        raise NotFoundError("comment not found")
    return comment


def _novel_title_for(db: Session, comment: Comment) -> tuple[int | None, str]:
    novel_id = comment.novel_id
    if novel_id is None and comment.chapter_id is not None:
        chapter = db.get(Chapter, comment.chapter_id)
        novel_id = chapter.novel_id if chapter else None
    novel = db.get(Novel, novel_id) if novel_id is not None else None
    return novel_id, (novel.title if novel else "")


def serialize_comment(comment: Comment, *, liked_ids: set[int] | None = None) -> dict[str, Any]:
    payload = comment.model_dump()
    payload["comment_type"] = comment_type(comment)
    payload["has_liked"] = bool(liked_ids and comment.id in liked_ids)
    return payload


def _liked_comment_ids(db: Session, *, user_id: str | None, comment_ids: list[int]) -> set[int]:
    if not user_id or not comment_ids:
        return set()
    stmt = select(CommentReaction.comment_id).where(
        CommentReaction.user_id == user_id,
        CommentReaction.reaction_type == "like",
        CommentReaction.comment_id.in_(comment_ids),
    )
    return {int(item) for item in db.exec(stmt).all()}


def _visible(stmt):
    return stmt.where(
        Comment.is_deleted == False,  # noqa: E712
        Comment.is_approved == True,  # noqa: E712
    )


def list_comments(
    db: Session,
    *,
    novel_id: int | None = None,
    chapter_id: int | None = None,
    parent_comment_id: int | None = None,
    viewer_id: str | None = None,
) -> list[dict[str, Any]]:
    """Approved, non-deleted comments for a novel or chapter with their replies nested.

    Pinned comments come first, then newest first. Replies keep the same
    visibility filter and are ordered oldest first.
    """
    novel_id, chapter_id = _resolve_target(novel_id, chapter_id)
    stmt = select(Comment)
    if novel_id is not None:
        stmt = stmt.where(Comment.novel_id == novel_id)
    else:
        stmt = stmt.where(Comment.chapter_id == chapter_id)
    if parent_comment_id is None:
        stmt = stmt.where(Comment.parent_comment_id.is_(None))
    else:
        stmt = stmt.where(Comment.parent_comment_id == parent_comment_id)
    stmt = _visible(stmt).order_by(Comment.is_pinned.desc(), Comment.created_at.desc(), Comment.id.desc())
    top_level = list(db.exec(stmt).all())
    if not top_level:
        return []

    parent_ids = [int(item.id) for item in top_level if item.id is not None]
    reply_stmt = _visible(select(Comment).where(Comment.parent_comment_id.in_(parent_ids))).order_by(
        Comment.created_at.asc(), Comment.id.asc()
    )
    replies = list(db.exec(reply_stmt).all())
    replies_by_parent: dict[int, list[Comment]] = {}
    for reply in replies:
        replies_by_parent.setdefault(int(reply.parent_comment_id), []).append(reply)

    all_ids = parent_ids + [int(item.id) for item in replies if item.id is not None]
    liked_ids = _liked_comment_ids(db, user_id=viewer_id, comment_ids=all_ids)

    results: list[dict[str, Any]] = []
    for comment in top_level:
        payload = serialize_comment(comment, liked_ids=liked_ids)
        payload["replies"] = [
            serialize_comment(reply, liked_ids=liked_ids) for reply in replies_by_parent.get(int(comment.id), [])
        ]
        results.append(payload)
    return results


def create_comment(
    db: Session,
    *,
    user_id: str,
    content: str,
    novel_id: int | None = None,
    chapter_id: int | None = None,
    parent_comment_id: int | None = None,
    is_approved: bool = True,
) -> Comment:
    novel_id, chapter_id = _resolve_target(novel_id, chapter_id)
    text = _normalize_content(content)
    if novel_id is not None and not db.get(Novel, novel_id):
        raise NotFoundError("novel not found")
    if chapter_id is not None and not db.get(Chapter, chapter_id):
        raise NotFoundError("chapter not found")
    if parent_comment_id is not None:
        parent = db.get(Comment, parent_comment_id)
        if not parent or parent.novel_id != novel_id or parent.chapter_id != chapter_id:
            raise ValueError("invalid parent comment")

    now = _utc_now()
    comment = Comment(
        user_id=user_id,
        novel_id=novel_id,
        chapter_id=chapter_id,
        parent_comment_id=parent_comment_id,
        content=text,
        is_approved=bool(is_approved),
        created_at=now,
        updated_at=now,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def update_comment(db: Session, *, comment_id: int, user_id: str, content: str) -> Comment:
    comment = require_comment(db, comment_id)
    if comment.is_deleted:
        raise NotFoundError("comment not found")
    if comment.user_id != user_id:
        raise PermissionDeniedError("only the author can edit this comment")
    comment.content = _normalize_content(content)
    comment.is_edited = True
    comment.updated_at = _utc_now()
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def soft_delete_comment(db: Session, *, comment_id: int, user_id: str) -> Comment:
    comment = require_comment(db, comment_id)
    if comment.user_id != user_id:
        raise PermissionDeniedError("only the author can delete this comment")
    comment.is_deleted = True
    comment.updated_at = _utc_now()
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def report_comment(db: Session, *, comment_id: int, user_id: str, reason: str) -> Comment:
    """Record one report per user; hide the comment once the threshold is reached.

    The duplicate check and the counter update are separate statements, so
    two concurrent reports can both pass the check and one increment may be
    lost. The unique (comment_id, user_id) constraint still rejects the second
    report row.
    """
    comment = _require_live_comment(db, comment_id)
    reason_text = str(reason or "").strip()
    if not reason_text:
        raise ValueError("reason is required")

    existing = db.exec(
        select(CommentReport).where(CommentReport.comment_id == comment_id, CommentReport.user_id == user_id)
    ).first()
    if existing:
        raise DuplicateActionError("you have already reported this comment")

    db.add(CommentReport(comment_id=comment_id, user_id=user_id, reason=reason_text[:1000]))
    comment.reported_count = int(comment.reported_count or 0) + 1
    comment.report_reason = reason_text[:1000]
    if comment.reported_count >= int(settings.comment_report_threshold):
        if comment.is_approved:
            _LOGGER.info("comment %s hidden after %s reports", comment_id, comment.reported_count)
        comment.is_approved = False
    comment.updated_at = _utc_now()
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def _apply_reaction_count(comment: Comment, reaction_type: str, delta: int) -> None:
    if reaction_type == "like":
        comment.likes_count = max(int(comment.likes_count or 0) + delta, 0)
    else:
        comment.dislikes_count = max(int(comment.dislikes_count or 0) + delta, 0)


def add_reaction(db: Session, *, comment_id: int, user_id: str, action: str) -> Comment:
    reaction_type = _normalize_reaction(action)
    comment = _require_live_comment(db, comment_id)
    existing = db.exec(
        select(CommentReaction).where(CommentReaction.comment_id == comment_id, CommentReaction.user_id == user_id)
    ).first()
    if existing and existing.reaction_type == reaction_type:
        raise DuplicateActionError(f"Already {reaction_type}d this comment")

    if existing:
        _apply_reaction_count(comment, existing.reaction_type, -1)
        existing.reaction_type = reaction_type
        existing.created_at = _utc_now()
        db.add(existing)
    else:
        db.add(CommentReaction(comment_id=comment_id, user_id=user_id, reaction_type=reaction_type))
    _apply_reaction_count(comment, reaction_type, 1)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def remove_reaction(db: Session, *, comment_id: int, user_id: str, action: str) -> Comment:
    reaction_type = _normalize_reaction(action)
    comment = require_comment(db, comment_id)
    existing = db.exec(
        select(CommentReaction).where(
            CommentReaction.comment_id == comment_id,
            CommentReaction.user_id == user_id,
            CommentReaction.reaction_type == reaction_type,
        )
    ).first()
    if not existing:
        raise NotFoundError("reaction not found")
    db.delete(existing)
    _apply_reaction_count(comment, reaction_type, -1)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def list_comments_for_admin(db: Session, *, novel_id: int, chapter_id: int | None = None) -> Iterable[Comment]:
    """Every comment on a novel, or on one of its chapters, hidden and deleted ones included."""
    if not db.get(Novel, novel_id):
        raise NotFoundError("novel not found")
    if chapter_id is None:
        scope = Comment.novel_id == novel_id
    else:
        chapter = db.get(Chapter, chapter_id)
        if not chapter or chapter.novel_id != novel_id:
            raise NotFoundError("chapter not found")
        scope = Comment.chapter_id == chapter_id
    stmt = (
        select(Comment)
        .where(scope)
        .order_by(Comment.is_flagged.desc(), Comment.reported_count.desc(), Comment.created_at.desc())
    )
    return db.exec(stmt).all()


def _require_admin_comment(db: Session, *, novel_id: int, comment_id: int, chapter_id: int | None = None) -> Comment:
    comment = db.get(Comment, comment_id)
    if comment and chapter_id is None:
        in_scope = comment.novel_id == novel_id
    elif comment:
        chapter = db.get(Chapter, chapter_id)
        in_scope = comment.chapter_id == chapter_id and chapter is not None and chapter.novel_id == novel_id
    else:
        in_scope = False
    if not in_scope:
        raise NotFoundError("Comment not found")
    return comment


def _location_text(db: Session, comment: Comment) -> tuple[int | None, str, str]:
    novel_id, novel_title = _novel_title_for(db, comment)
    if comment.chapter_id is None:
        return novel_id, novel_title, f"the novel \"{novel_title}\""
    chapter = db.get(Chapter, comment.chapter_id)
    chapter_title = chapter.title if chapter and chapter.title else f"chapter {comment.chapter_id}"
    return novel_id, novel_title, f"\"{chapter_title}\" of \"{novel_title}\""


def _notification_data(novel_id: int | None, novel_title: str, comment: Comment, **extra: Any) -> dict[str, Any]:
    data: dict[str, Any] = {"novel_id": novel_id, "novel_title": novel_title, "comment_id": comment.id}
    if comment.chapter_id is not None:
        data["chapter_id"] = comment.chapter_id
    data.update(extra)
    return data


def flag_comment(
    db: Session,
    *,
    novel_id: int,
    comment_id: int,
    admin_id: str,
    reason: str | None = None,
    chapter_id: int | None = None,
) -> Comment:
    comment = _require_admin_comment(db, novel_id=novel_id, comment_id=comment_id, chapter_id=chapter_id)
    reason_text = str(reason or "").strip() or settings.comment_admin_flag_reason
    comment.is_flagged = True
    comment.flag_reason = reason_text[:1000]
    comment.flagged_at = _utc_now()
    comment.flagged_by = admin_id
    db.add(comment)
    db.commit()
    db.refresh(comment)

    _, novel_title, where = _location_text(db, comment)
    notification_service.create_notification(
        db,
        user_id=comment.user_id,
        type=notification_service.COMMENT_FLAGGED,
        title="Comment flagged",
        message=f"Your comment on {where} has been flagged for review.",
        data=_notification_data(novel_id, novel_title, comment, reason=reason_text),
    )
    return comment


def approve_comment(
    db: Session,
    *,
    novel_id: int,
    comment_id: int,
    admin_id: str,
    chapter_id: int | None = None,
) -> Comment:
    comment = _require_admin_comment(db, novel_id=novel_id, comment_id=comment_id, chapter_id=chapter_id)
    comment.is_approved = True
    comment.is_flagged = False
    comment.flag_reason = None
    comment.flagged_at = None
    comment.flagged_by = None
    comment.reviewed_at = _utc_now()
    comment.reviewed_by = admin_id
    db.add(comment)
    db.commit()
    db.refresh(comment)

    _, novel_title, where = _location_text(db, comment)
    notification_service.create_notification(
        db,
        user_id=comment.user_id,
        type=notification_service.COMMENT_APPROVED,
        title="Comment approved",
        message=f"Your comment on {where} has been reviewed and approved.",
        data=_notification_data(novel_id, novel_title, comment),
    )
    return comment


def update_comment_flags(
    db: Session,
    *,
    novel_id: int,
    comment_id: int,
    admin_id: str,
    chapter_id: int | None = None,
    **flags: bool,
) -> Comment:
    """Set ``is_pinned``, ``is_approved`` or ``is_deleted`` directly. No notification is sent."""
    unknown = set(flags) - {"is_pinned", "is_approved", "is_deleted"}
    if unknown:
        raise ValueError(f"unsupported comment flags: {', '.join(sorted(unknown))}")
    comment = _require_admin_comment(db, novel_id=novel_id, comment_id=comment_id, chapter_id=chapter_id)
    for name, value in flags.items():
        setattr(comment, name, bool(value))
    comment.reviewed_at = _utc_now()
    comment.reviewed_by = admin_id
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def _collect_thread_ids(db: Session, root_id: int) -> list[int]:
    collected: list[int] = [root_id]
    frontier: list[int] = [root_id]
    while frontier:
        children = db.exec(select(Comment.id).where(Comment.parent_comment_id.in_(frontier))).all()
        frontier = [int(item) for item in children if int(item) not in collected]
        collected.extend(frontier)
    return collected


def purge_comments(db: Session, comment_ids: list[int]) -> int:
    """Hard delete comments with their reports and reactions, replies before parents."""
    if not comment_ids:
        return 0
    for model in (CommentReport, CommentReaction):
        for row in db.exec(select(model).where(model.comment_id.in_(comment_ids))).all():
            db.delete(row)
    db.flush()
    for comment_id in reversed(comment_ids):
        row = db.get(Comment, comment_id)
        if row:
            db.delete(row)
            db.flush()
    return len(comment_ids)


def admin_delete_comment(
    db: Session,
    *,
    novel_id: int,
    comment_id: int,
    admin_id: str,
    chapter_id: int | None = None,
) -> int:
    comment = _require_admin_comment(db, novel_id=novel_id, comment_id=comment_id, chapter_id=chapter_id)
    author_id = comment.user_id
    _, novel_title, where = _location_text(db, comment)
    data = _notification_data(novel_id, novel_title, comment)

    deleted = purge_comments(db, _collect_thread_ids(db, comment_id))
    db.commit()
    _LOGGER.info("admin %s deleted comment %s (%s rows)", admin_id, comment_id, deleted)

    notification_service.create_notification(
        db,
        user_id=author_id,
        type=notification_service.COMMENT_DELETED_ADMIN,
        title="Comment removed",
        message=f"Your comment on {where} has been removed by an administrator.",
        data=data,
    )
    return deleted


def admin_reply(db: Session, *, comment_id: int, admin_id: str, content: str) -> Comment:
    parent = require_comment(db, comment_id)
    reply = create_comment(
        db,
        user_id=admin_id,
        content=content,
        novel_id=parent.novel_id,
        chapter_id=parent.chapter_id,
        parent_comment_id=comment_id,
        is_approved=True,
    )
    if parent.user_id and parent.user_id != admin_id:
        novel_id, novel_title = _novel_title_for(db, parent)
        notification_service.create_notification(
            db,
            user_id=parent.user_id,
            type=notification_service.COMMENT_REPLY,
            title="New reply",
            message=f'An administrator replied to your comment on "{novel_title}".',
            data={"novel_id": novel_id, "comment_id": comment_id, "reply_id": reply.id},
        )
    return reply
