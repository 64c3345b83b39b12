from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal, get_optional_principal
from app.core.database import get_session
from app.schemas.engagement import (
    BookmarkDeleteResult,
    BookmarkRead,
    BookmarkUpdateRequest,
    BookmarkUpsertRequest,
    NovelViewCreateRequest,
    NovelViewRecordResult,
    NovelViewStats,
    ReadingProgressDeleteResult,
    ReadingProgressRead,
    ReadingProgressUpsertRequest,
    ReadingStatusDeleteResult,
    ReadingStatusRead,
    ReadingStatusUpsertRequest,
    UserPreferenceRead,
    UserPreferenceUpdateRequest,
)
from app.services import reader_service

router = APIRouter(tags=["reader"])


@router.get("/user-preferences", response_model=UserPreferenceRead)
def user_preferences(
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return reader_service.get_preferences(db, user_id=principal.user_id)


@router.post("/user-preferences", response_model=UserPreferenceRead)
def save_user_preferences(
    payload: UserPreferenceUpdateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return reader_service.save_preferences(db, user_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)


@router.get("/bookmarks", response_model=list[BookmarkRead])
def bookmarks(
    novel_id: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return reader_service.list_bookmarks(db, user_id=principal.user_id, novel_id=novel_id)


@router.post("/bookmarks", response_model=BookmarkRead)
def save_bookmark(
    payload: BookmarkUpsertRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return reader_service.upsert_bookmark(db, user_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)


@router.patch("/bookmarks", response_model=BookmarkRead)
def edit_bookmark(
    payload: BookmarkUpdateRequest,
    id: int = Query(ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return reader_service.update_bookmark_note(db, bookmark_id=id, user_id=principal.user_id, note=payload.note)
    except ValueError as exc:
        raise_http_error(exc)


@router.delete("/bookmarks", response_model=BookmarkDeleteResult)
def remove_bookmark(
    id: int = Query(ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        deleted_id = reader_service.delete_bookmark(db, bookmark_id=id, user_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)
    return BookmarkDeleteResult(deleted_bookmark_id=deleted_id)


@router.get("/reading-progress", response_model=list[ReadingProgressRead])
def reading_progress(
    novel_id: int = Query(ge=1),
    chapter_id: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return reader_service.list_reading_progress(
        db,
        user_id=principal.user_id,
        novel_id=novel_id,
        chapter_id=chapter_id,
    )


@router.post("/reading-progress", response_model=ReadingProgressRead)
def save_reading_progress(
    payload: ReadingProgressUpsertRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return reader_service.save_reading_progress(db, user_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)


@router.delete("/reading-progress", response_model=ReadingProgressDeleteResult)
def remove_reading_progress(
    novel_id: int = Query(ge=1),
    chapter_id: int = Query(ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    deleted = reader_service.delete_reading_progress(
        db,
        user_id=principal.user_id,
        novel_id=novel_id,
        chapter_id=chapter_id,
    )
    return ReadingProgressDeleteResult(deleted=deleted)


@router.get("/reading-status", response_model=list[ReadingStatusRead])
def reading_status(
    novel_id: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return reader_service.list_reading_statuses(db, user_id=principal.user_id, novel_id=novel_id)


@router.post("/reading-status", response_model=ReadingStatusRead)
def save_reading_status(
    payload: ReadingStatusUpsertRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return reader_service.save_reading_status(db, user_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)


@router.delete("/reading-status", response_model=ReadingStatusDeleteResult)
def remove_reading_status(
    novel_id: int = Query(ge=1),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    deleted = reader_service.delete_reading_status(db, user_id=principal.user_id, novel_id=novel_id)
    return ReadingStatusDeleteResult(deleted=deleted)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


@router.post("/novel-views", response_model=NovelViewRecordResult)
def record_novel_view(
    payload: NovelViewCreateRequest,
    request: Request,
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    try:
        recorded = reader_service.record_novel_view(
            db,
            novel_id=payload.novel_id,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent", "unknown"),
            user_id=principal.user_id if principal else None,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return NovelViewRecordResult(recorded=recorded, message="" if recorded else "Recent view exists")


@router.get("/novel-views", response_model=NovelViewStats)
def novel_view_stats(
    novel_id: int = Query(ge=1),
    period: str = Query(default="all"),
    db: Session = Depends(get_session),
):
    try:
        return reader_service.novel_view_stats(db, novel_id=novel_id, period=period)
    except ValueError as exc:
        raise_http_error(exc)
