from typing import Literal

from fastapi import APIRouter, Depends, Form
from sqlmodel import Session

from app.api.errors import admin_redirect, raise_http_error
from app.core.auth import AuthPrincipal, require_admin
from app.core.database import get_session
from app.models.content import Chapter
from app.schemas.content import (
    AdminCommentRead,
    ChapterPublishToggleResult,
    NovelApprovalResult,
    NovelDeleteResult,
    NovelStatusUpdateRequest,
    NovelStatusUpdateResult,
)
from app.services import comment_service, novel_service
from app.services.errors import NotFoundError

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/novels/{novel_id}/approve")
def approve_novel(
    novel_id: int,
    feedback: str = Form(default=""),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        novel_service.approve_novel(db, novel_id=novel_id, admin_id=principal.user_id, feedback=feedback)
    except ValueError as exc:
        raise_http_error(exc)
    return admin_redirect(f"novels/{novel_id}", success="Novel approved successfully")


@router.post("/novels/{novel_id}/reject")
def reject_novel(
    novel_id: int,
    feedback: str = Form(default=""),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        novel_service.reject_novel(db, novel_id=novel_id, admin_id=principal.user_id, feedback=feedback)
    except ValueError as exc:
        raise_http_error(exc)
    return admin_redirect(f"novels/{novel_id}", success="Novel rejected successfully")


@router.post("/novels/{novel_id}/approval", response_model=NovelApprovalResult)
def review_novel(
    novel_id: int,
    status: str = Form(...),
    reason: str = Form(default=""),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        novel = novel_service.review_novel(
            db,
            novel_id=novel_id,
            admin_id=principal.user_id,
            status=status,
            reason=reason,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return NovelApprovalResult(message=f"Novel {novel.status} successfully")


@router.post("/novels/{novel_id}/update-status", response_model=NovelStatusUpdateResult)
def update_novel_status(
    novel_id: int,
    payload: NovelStatusUpdateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        novel = novel_service.update_novel_status(
            db,
            novel_id=novel_id,
            admin_id=principal.user_id,
            status=payload.status,
            is_public=payload.is_public,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return NovelStatusUpdateResult(
        message="Novel status updated successfully",
        status=novel.status,
        is_public=novel.is_public,
    )


@router.delete("/novels/{novel_id}", response_model=NovelDeleteResult)
def delete_novel(
    novel_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        deleted_id = novel_service.delete_novel(db, novel_id=novel_id, user_id=principal.user_id, is_admin=True)
    except ValueError as exc:
        raise_http_error(exc)
    return NovelDeleteResult(deleted_novel_id=deleted_id)


CommentAction = Literal["flag", "approve", "disapprove", "pin", "unpin", "restore", "delete"]

_ACTION_MESSAGES: dict[str, str] = {
    "flag": "Comment flagged successfully",
    "approve": "Comment approved successfully",
    "disapprove": "Comment disapproved successfully",
    "pin": "Comment pinned successfully",
    "unpin": "Comment unpinned successfully",
    "restore": "Comment restored successfully",
    "delete": "Comment deleted successfully",
}

_ACTION_FLAGS: dict[str, dict[str, bool]] = {
    "disapprove": {"is_approved": False},
    "pin": {"is_pinned": True},
    "unpin": {"is_pinned": False},
    "restore": {"is_deleted": False},
}


def _comments_page(novel_id: int, chapter_id: int | None = None) -> str:
    if chapter_id is None:
        return f"novels/{novel_id}/comments"
    return f"novels/{novel_id}/chapters/{chapter_id}/comments"


def _moderate_comment(
    db: Session,
    *,
    action: str,
    novel_id: int,
    comment_id: int,
    admin_id: str,
    chapter_id: int | None = None,
    reason: str = "",
):
    scope = {"novel_id": novel_id, "comment_id": comment_id, "admin_id": admin_id, "chapter_id": chapter_id}
    page = _comments_page(novel_id, chapter_id)
    try:
        if action == "flag":
            comment_service.flag_comment(db, reason=reason, **scope)
        elif action == "approve":
            comment_service.approve_comment(db, **scope)
        elif action == "delete":
            comment_service.admin_delete_comment(db, **scope)
        else:
            comment_service.update_comment_flags(db, **scope, **_ACTION_FLAGS[action])
    except NotFoundError as exc:
        return admin_redirect(page, error=str(exc))
    return admin_redirect(page, success=_ACTION_MESSAGES[action])


def _admin_comment_list(db: Session, *, novel_id: int, chapter_id: int | None = None) -> list[dict]:
    try:
        rows = comment_service.list_comments_for_admin(db, novel_id=novel_id, chapter_id=chapter_id)
    except ValueError as exc:
        raise_http_error(exc)
    return [comment_service.serialize_comment(row) for row in rows]


@router.get("/novels/{novel_id}/comments", response_model=list[AdminCommentRead])
def novel_comments(
    novel_id: int,
    db: Session = Depends(get_session),
    _: AuthPrincipal = Depends(require_admin),
):
    return _admin_comment_list(db, novel_id=novel_id)


@router.post("/novels/{novel_id}/comments/{comment_id}/{action}")
def moderate_novel_comment(
    novel_id: int,
    comment_id: int,
    action: CommentAction,
    reason: str = Form(default=""),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    return _moderate_comment(
        db,
        action=action,
        novel_id=novel_id,
        comment_id=comment_id,
        admin_id=principal.user_id,
        reason=reason,
    )


@router.get("/novels/{novel_id}/chapters/{chapter_id}/comments", response_model=list[AdminCommentRead])
def chapter_comments(
    novel_id: int,
    chapter_id: int,
    db: Session = Depends(get_session),
    _: AuthPrincipal = Depends(require_admin),
):
    return _admin_comment_list(db, novel_id=novel_id, chapter_id=chapter_id)


@router.post("/novels/{novel_id}/chapters/{chapter_id}/comments/{comment_id}/{action}")
def moderate_chapter_comment(
    novel_id: int,
    chapter_id: int,
    comment_id: int,
    action: CommentAction,
    reason: str = Form(default=""),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    return _moderate_comment(
        db,
        action=action,
        novel_id=novel_id,
        comment_id=comment_id,
        admin_id=principal.user_id,
        chapter_id=chapter_id,
        reason=reason,
    )


@router.post("/comments/{comment_id}/reply")
def reply_to_comment(
    comment_id: int,
    content: str = Form(...),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        reply = comment_service.admin_reply(db, comment_id=comment_id, admin_id=principal.user_id, content=content)
    except ValueError as exc:
        raise_http_error(exc)
    if reply.novel_id is not None:
        return admin_redirect(_comments_page(reply.novel_id), success="Reply posted successfully")
    chapter = db.get(Chapter, reply.chapter_id)
    if not chapter:
        raise_http_error(NotFoundError("chapter not found"))
    return admin_redirect(_comments_page(chapter.novel_id, chapter.id), success="Reply posted successfully")


@router.post("/chapters/{chapter_id}/toggle-publish", response_model=ChapterPublishToggleResult)
def toggle_chapter_publish(
    chapter_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(require_admin),
):
    try:
        chapter = novel_service.toggle_chapter_publish(db, chapter_id=chapter_id, admin_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)
    return ChapterPublishToggleResult(
        chapter_id=int(chapter.id),
        novel_id=chapter.novel_id,
        is_published=chapter.is_published,
    )
