from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal, get_optional_principal
from app.core.database import get_session
from app.schemas.content import (
    CommentActionResult,
    CommentCreateRequest,
    CommentReportRequest,
    CommentThreadRead,
    CommentUpdateRequest,
    ReactionAction,
)
from app.services import comment_service

router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("", response_model=list[CommentThreadRead])
def comments(
    novel_id: Optional[int] = Query(default=None, ge=1),
    chapter_id: Optional[int] = Query(default=None, ge=1),
    parent_comment_id: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    try:
        return comment_service.list_comments(
            db,
            novel_id=novel_id,
            chapter_id=chapter_id,
            parent_comment_id=parent_comment_id,
            viewer_id=principal.user_id if principal else None,
        )
    except ValueError as exc:
        raise_http_error(exc)


@router.post("", response_model=CommentThreadRead)
def new_comment(
    payload: CommentCreateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        comment = comment_service.create_comment(db, user_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)
    return {**comment_service.serialize_comment(comment), "replies": []}


@router.post("/report", response_model=CommentActionResult)
def report(
    payload: CommentReportRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        comment = comment_service.report_comment(
            db,
            comment_id=payload.comment_id,
            user_id=principal.user_id,
            reason=payload.reason,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return CommentActionResult(
        comment_id=int(comment.id),
        reported_count=comment.reported_count,
        is_approved=comment.is_approved,
    )


@router.patch("/{comment_id}", response_model=CommentThreadRead)
def edit_comment(
    comment_id: int,
    payload: CommentUpdateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        comment = comment_service.update_comment(
            db,
            comment_id=comment_id,
            user_id=principal.user_id,
            content=payload.content,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return {**comment_service.serialize_comment(comment), "replies": []}


@router.delete("/{comment_id}", response_model=CommentActionResult)
def remove_comment(
    comment_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        comment = comment_service.soft_delete_comment(db, comment_id=comment_id, user_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)
    return CommentActionResult(comment_id=int(comment.id))


@router.post("/{comment_id}/reactions", response_model=CommentActionResult)
def react(
    comment_id: int,
    action: ReactionAction = Query(...),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        comment = comment_service.add_reaction(db, comment_id=comment_id, user_id=principal.user_id, action=action)
    except ValueError as exc:
        raise_http_error(exc)
    return CommentActionResult(
        comment_id=int(comment.id),
        likes_count=comment.likes_count,
        dislikes_count=comment.dislikes_count,
    )


@router.delete("/{comment_id}/reactions", response_model=CommentActionResult)
def unreact(
    comment_id: int,
    action: ReactionAction = Query(...),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        comment = comment_service.remove_reaction(db, comment_id=comment_id, user_id=principal.user_id, action=action)
    except ValueError as exc:
        raise_http_error(exc)
    return CommentActionResult(
        comment_id=int(comment.id),
        likes_count=comment.likes_count,
        dislikes_count=comment.dislikes_count,
    )
