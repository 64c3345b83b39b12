from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal, get_optional_principal
from app.core.database import get_session
from app.schemas.content import (
    ChapterCreateRequest,
    ChapterDeleteResult,
    ChapterRead,
    ChapterUpdateRequest,
    NovelCreateRequest,
    NovelDeleteResult,
    NovelDetailRead,
    NovelRead,
    NovelUpdateRequest,
)
from app.services import novel_service
from app.services.errors import NotFoundError

router = APIRouter(prefix="/novels", tags=["novels"])


def _visible_novel(db: Session, novel_id: int, principal: AuthPrincipal | None):
    novel = novel_service.require_novel(db, novel_id)
    viewer_id = principal.user_id if principal else None
    is_admin = bool(principal and principal.is_admin)
    if not novel_service.can_view_novel(novel, viewer_id=viewer_id, is_admin=is_admin):
        raise NotFoundError("novel not found")
    privileged = is_admin or novel.user_id == viewer_id
    return novel, privileged


@router.get("", response_model=list[NovelRead])
def novels(
    genre: Optional[str] = Query(default=None, max_length=64),
    mine: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    if mine and principal:
        return novel_service.list_user_novels(db, user_id=principal.user_id)
    return novel_service.list_public_novels(db, genre=genre, limit=limit)


@router.post("", response_model=NovelRead)
def new_novel(
    payload: NovelCreateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return novel_service.create_novel(db, user_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)


@router.get("/{novel_id}", response_model=NovelDetailRead)
def novel_detail(
    novel_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    try:
        novel, privileged = _visible_novel(db, novel_id, principal)
    except ValueError as exc:
        raise_http_error(exc)
    chapters = novel_service.list_chapters(db, novel_id=novel_id, published_only=not privileged)
    return NovelDetailRead(
        **novel.model_dump(),
        chapters=[ChapterRead(**item.model_dump()) for item in chapters],
    )


@router.put("/{novel_id}", response_model=NovelRead)
def edit_novel(
    novel_id: int,
    payload: NovelUpdateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return novel_service.update_novel(
            db,
            novel_id=novel_id,
            user_id=principal.user_id,
            is_admin=principal.is_admin,
            **payload.model_dump(exclude_unset=True),
        )
    except ValueError as exc:
        raise_http_error(exc)


@router.delete("/{novel_id}", response_model=NovelDeleteResult)
def remove_novel(
    novel_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        deleted_id = novel_service.delete_novel(
            db,
            novel_id=novel_id,
            user_id=principal.user_id,
            is_admin=principal.is_admin,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return NovelDeleteResult(deleted_novel_id=deleted_id)


@router.get("/{novel_id}/chapters", response_model=list[ChapterRead])
def chapters(
    novel_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    try:
        _, privileged = _visible_novel(db, novel_id, principal)
    except ValueError as exc:
        raise_http_error(exc)
    return novel_service.list_chapters(db, novel_id=novel_id, published_only=not privileged)


@router.post("/{novel_id}/chapters", response_model=ChapterRead)
def new_chapter(
    novel_id: int,
    payload: ChapterCreateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return novel_service.create_chapter(
            db,
            novel_id=novel_id,
            user_id=principal.user_id,
            is_admin=principal.is_admin,
            **payload.model_dump(),
        )
    except ValueError as exc:
        raise_http_error(exc)


@router.get("/{novel_id}/chapters/{chapter_id}", response_model=ChapterRead)
def chapter_detail(
    novel_id: int,
    chapter_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    try:
        _, privileged = _visible_novel(db, novel_id, principal)
        chapter = novel_service.require_chapter(db, novel_id=novel_id, chapter_id=chapter_id)
        if not privileged and not chapter.is_published:
            raise NotFoundError("chapter not found")
    except ValueError as exc:
        raise_http_error(exc)
    return chapter


@router.put("/{novel_id}/chapters/{chapter_id}", response_model=ChapterRead)
def edit_chapter(
    novel_id: int,
    chapter_id: int,
    payload: ChapterUpdateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return novel_service.update_chapter(
            db,
            novel_id=novel_id,
            chapter_id=chapter_id,
            user_id=principal.user_id,
            is_admin=principal.is_admin,
            **payload.model_dump(exclude_unset=True),
        )
    except ValueError as exc:
        raise_http_error(exc)


@router.delete("/{novel_id}/chapters/{chapter_id}", response_model=ChapterDeleteResult)
def remove_chapter(
    novel_id: int,
    chapter_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        deleted_id = novel_service.delete_chapter(
            db,
            novel_id=novel_id,
            chapter_id=chapter_id,
            user_id=principal.user_id,
            is_admin=principal.is_admin,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return ChapterDeleteResult(deleted_chapter_id=deleted_id)
