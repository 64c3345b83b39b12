from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal
from app.core.database import get_session
from app.schemas.engagement import MarkAllReadResult, NotificationRead, UnreadCountRead
from app.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
def notifications(
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return notification_service.list_notifications(db, user_id=principal.user_id, limit=limit)


@router.get("/unread-count", response_model=UnreadCountRead)
def unread_count(
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return UnreadCountRead(unread_count=notification_service.count_unread(db, user_id=principal.user_id))


@router.post("/read-all", response_model=MarkAllReadResult)
def read_all(
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    return MarkAllReadResult(updated=notification_service.mark_all_read(db, user_id=principal.user_id))


@router.post("/{notification_id}/read", response_model=NotificationRead)
def read_one(
    notification_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return notification_service.mark_notification_read(
            db,
            notification_id=notification_id,
            user_id=principal.user_id,
        )
    except ValueError as exc:
        raise_http_error(exc)
