from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import func
from sqlmodel import Session, select

from app.core.config import settings
from app.models.content import Chapter, Novel
from app.models.engagement import Bookmark, NovelView, ReadingProgress, ReadingStatus, UserPreference
from app.services.errors import NotFoundError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_tags(value: Any, *, max_items: int = 50) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for raw in value:
        text = str(raw or "").strip()
        if text and text not in items:
            items.append(text[:64])
        if len(items) >= max_items:
            break
    return items


def default_preferences(user_id: str) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "favorite_genres": [],
        "favorite_studios": [],
        "preferred_content_types": [],
        "min_rating": float(settings.preference_default_min_rating),
        "updated_at": None,
    }


def get_preferences(db: Session, *, user_id: str) -> dict[str, Any]:
    row = db.exec(select(UserPreference).where(UserPreference.user_id == user_id)).first()
    if not row:
        return default_preferences(user_id)
    return row.model_dump(exclude={"id"})


def save_preferences(
    db: Session,
    *,
    user_id: str,
    favorite_genres: list[str] | None = None,
    favorite_studios: list[str] | None = None,
    preferred_content_types: list[str] | None = None,
    min_rating: float | None = None,
) -> UserPreference:
    row = db.exec(select(UserPreference).where(UserPreference.user_id == user_id)).first()
    if not row:
        row = UserPreference(user_id=user_id, min_rating=float(settings.preference_default_min_rating))
    if favorite_genres is not None:
        row.favorite_genres = _normalize_tags(favorite_genres)
    if favorite_studios is not None:
        row.favorite_studios = _normalize_tags(favorite_studios)
    if preferred_content_types is not None:
        row.preferred_content_types = _normalize_tags(preferred_content_types)
    if min_rating is not None:
        rating = float(min_rating)
        if rating < 0 or rating > 10:
            raise ValueError("min_rating must be between 0 and 10")
        row.min_rating = rating
    row.updated_at = _utc_now()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _require_target(db: Session, *, novel_id: int, chapter_id: int | None) -> None:
    if not db.get(Novel, novel_id):
        raise NotFoundError("novel not found")
    if chapter_id is not None:
        chapter = db.get(Chapter, chapter_id)
        if not chapter or chapter.novel_id != novel_id:
            raise NotFoundError("chapter not found")


def list_bookmarks(db: Session, *, user_id: str, novel_id: int | None = None) -> Iterable[Bookmark]:
    stmt = select(Bookmark).where(Bookmark.user_id == user_id)
    if novel_id is not None:
        stmt = stmt.where(Bookmark.novel_id == novel_id)
    return db.exec(stmt.order_by(Bookmark.created_at.desc(), Bookmark.id.desc())).all()


def upsert_bookmark(
    db: Session,
    *,
    user_id: str,
    novel_id: int,
    chapter_id: int | None = None,
    note: str = "",
) -> Bookmark:
    _require_target(db, novel_id=novel_id, chapter_id=chapter_id)
    stmt = select(Bookmark).where(Bookmark.user_id == user_id, Bookmark.novel_id == novel_id)
    if chapter_id is None:
        stmt = stmt.where(Bookmark.chapter_id.is_(None))
    else:
        stmt = stmt.where(Bookmark.chapter_id == chapter_id)
    row = db.exec(stmt).first()
    now = _utc_now()
    if not row:
        row = Bookmark(user_id=user_id, novel_id=novel_id, chapter_id=chapter_id, created_at=now)
    row.note = str(note or "").strip()[:2000]
    row.updated_at = now
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _require_owned_bookmark(db: Session, *, bookmark_id: int, user_id: str) -> Bookmark:
    row = db.get(Bookmark, bookmark_id)
    if not row or row.user_id != user_id:
        raise NotFoundError("bookmark not found")
    return row


def update_bookmark_note(db: Session, *, bookmark_id: int, user_id: str, note: str) -> Bookmark:
    row = _require_owned_bookmark(db, bookmark_id=bookmark_id, user_id=user_id)
    row.note = str(note or "").strip()[:2000]
    row.updated_at = _utc_now()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def delete_bookmark(db: Session, *, bookmark_id: int, user_id: str) -> int:
    row = _require_owned_bookmark(db, bookmark_id=bookmark_id, user_id=user_id)
    db.delete(row)
    db.commit()
    return bookmark_id


def list_reading_progress(
    db: Session,
    *,
    user_id: str,
    novel_id: int,
    chapter_id: int | None = None,
) -> Iterable[ReadingProgress]:
    stmt = select(ReadingProgress).where(ReadingProgress.user_id == user_id, ReadingProgress.novel_id == novel_id)
    if chapter_id is not None:
        stmt = stmt.where(ReadingProgress.chapter_id == chapter_id)
    return db.exec(stmt.order_by(ReadingProgress.last_read_at.desc())).all()


def save_reading_progress(
    db: Session,
    *,
    user_id: str,
    novel_id: int,
    chapter_id: int,
    progress: int,
) -> ReadingProgress:
    value = int(progress)
    if value < 0 or value > 100:
        raise ValueError("progress must be between 0 and 100")
    _require_target(db, novel_id=novel_id, chapter_id=chapter_id)
    row = db.exec(
        select(ReadingProgress).where(
            ReadingProgress.user_id == user_id,
            ReadingProgress.novel_id == novel_id,
            ReadingProgress.chapter_id == chapter_id,
        )
    ).first()
    if not row:
        row = ReadingProgress(user_id=user_id, novel_id=novel_id, chapter_id=chapter_id)
    row.progress = value
    row.last_read_at = _utc_now()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def delete_reading_progress(db: Session, *, user_id: str, novel_id: int, chapter_id: int) -> int:
    rows = db.exec(
        select(ReadingProgress).where(
            ReadingProgress.user_id == user_id,
            ReadingProgress.novel_id == novel_id,
            ReadingProgress.chapter_id == chapter_id,
        )
    ).all()
    for row in rows:
        db.delete(row)
    db.commit()
    return len(rows)


READING_STATUSES: tuple[str, ...] = ("reading", "viewed", "will_read", "awaiting", "delayed", "dropped")
VIEW_DEDUP_WINDOW = timedelta(minutes=30)
VIEW_PERIODS: dict[str, timedelta | None] = {
    "all": None,
    "today": None,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


def _normalize_reading_status(status: str | None) -> str:
    value = str(status or "").strip().lower()
    if value not in READING_STATUSES:
        raise ValueError("invalid reading status")
    return value


def list_reading_statuses(db: Session, *, user_id: str, novel_id: int | None = None) -> Iterable[ReadingStatus]:
    stmt = select(ReadingStatus).where(ReadingStatus.user_id == user_id)
    if novel_id is not None:
        stmt = stmt.where(ReadingStatus.novel_id == novel_id)
    return db.exec(stmt.order_by(ReadingStatus.last_read_at.desc(), ReadingStatus.id.desc())).all()


def save_reading_status(
    db: Session,
    *,
    user_id: str,
    novel_id: int,
    status: str,
    last_read_chapter_id: int | None = None,
) -> ReadingStatus:
    """Upsert the caller's shelf status for a novel, one row per (user, novel)."""
    value = _normalize_reading_status(status)
    _require_target(db, novel_id=novel_id, chapter_id=last_read_chapter_id)
    row = db.exec(
        select(ReadingStatus).where(ReadingStatus.user_id == user_id, ReadingStatus.novel_id == novel_id)
    ).first()
    if not row:
        row = ReadingStatus(user_id=user_id, novel_id=novel_id, status=value)
    row.status = value
    row.last_read_chapter_id = last_read_chapter_id
    row.last_read_at = _utc_now()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def delete_reading_status(db: Session, *, user_id: str, novel_id: int) -> int:
    rows = db.exec(
        select(ReadingStatus).where(ReadingStatus.user_id == user_id, ReadingStatus.novel_id == novel_id)
    ).all()
    for row in rows:
        db.delete(row)
    db.commit()
    return len(rows)


def record_novel_view(
    db: Session,
    *,
    novel_id: int,
    ip_address: str,
    user_agent: str = "",
    user_id: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Store a view unless the same IP already viewed this novel in the last 30 minutes.

    Returns whether a new row was written.
    """
    if not db.get(Novel, novel_id):
        raise NotFoundError("novel not found")
    current = now or _utc_now()
    address = str(ip_address or "").strip()[:64] or "unknown"
    recent = db.exec(
        select(NovelView.id)
        .where(
            NovelView.novel_id == novel_id,
            NovelView.ip_address == address,
            NovelView.viewed_at >= current - VIEW_DEDUP_WINDOW,
        )
        .limit(1)
    ).first()
    if recent is not None:
        return False
    db.add(
        NovelView(
            novel_id=novel_id,
            user_id=user_id or None,
            ip_address=address,
            user_agent=str(user_agent or "unknown")[:512],
            viewed_at=current,
        )
    )
    db.commit()
    return True


def novel_view_stats(db: Session, *, novel_id: int, period: str = "all", now: datetime | None = None) -> dict[str, int]:
    if period not in VIEW_PERIODS:
        raise ValueError("invalid period")
    current = now or _utc_now()
    conditions = [NovelView.novel_id == novel_id]
    if period == "today":
        conditions.append(NovelView.viewed_at >= current.replace(hour=0, minute=0, second=0, microsecond=0))
    elif VIEW_PERIODS[period] is not None:
        conditions.append(NovelView.viewed_at >= current - VIEW_PERIODS[period])
    total = int(db.exec(select(func.count(NovelView.id)).where(*conditions)).one() or 0)

    # Unique counts only consider signed-in viewers.
    signed_in = db.exec(
        select(NovelView.user_id, NovelView.ip_address).where(*conditions, NovelView.user_id.is_not(None))
    ).all()
    return {
        "total_views": total,
        "unique_users": len({row[0] for row in signed_in}),
        "unique_ips": len({row[1] for row in signed_in}),
    }
