from typing import Iterable

from sqlalchemy import or_
from sqlmodel import Session, select

from app.models.chat import Character, ChatSession
from app.services.errors import NotFoundError, PermissionDeniedError


def _normalize_dialogues(value: list[str] | None, *, max_items: int = 32) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for raw in value:
        text = str(raw or "").strip()
        if text and text not in items:
            items.append(text[:1000])
        if len(items) >= max_items:
            break
    return items


def list_characters(db: Session, *, viewer_id: str | None = None) -> Iterable[Character]:
    stmt = select(Character).where(Character.is_active == True)  # noqa: E712
    if viewer_id:
        stmt = stmt.where(or_(Character.is_public == True, Character.creator_id == viewer_id))  # noqa: E712
    else:
        stmt = stmt.where(Character.is_public == True)  # noqa: E712
    return db.exec(stmt.order_by(Character.created_at.desc(), Character.id.desc())).all()


def get_character(db: Session, character_id: int) -> Character | None:
    return db.get(Character, character_id)


def require_character(db: Session, character_id: int) -> Character:
    character = get_character(db, character_id)
    if not character or not character.is_active:
        raise NotFoundError("character not found")
    return character


def create_character(
    db: Session,
    *,
    creator_id: str,
    name: str,
    description: str = "",
    content_source: str = "",
    personality: str = "",
    background: str = "",
    notable_quotes: str = "",
    dialogues: list[str] | None = None,
    image_url: str | None = None,
    is_public: bool = True,
) -> Character:
    normalized_name = str(name or "").strip()
    if not normalized_name:
        raise ValueError("name is required")
    character = Character(
        creator_id=creator_id,
        name=normalized_name[:255],
        description=str(description or "").strip(),
        content_source=str(content_source or "").strip()[:255],
        personality=str(personality or "").strip(),
        background=str(background or "").strip(),
        notable_quotes=str(notable_quotes or "").strip(),
        dialogues=_normalize_dialogues(dialogues),
        image_url=(str(image_url).strip() or None) if image_url else None,
        is_public=bool(is_public),
    )
    db.add(character)
    db.commit()
    db.refresh(character)
    return character


def delete_character(db: Session, *, character_id: int, user_id: str, is_admin: bool = False) -> int:
    character = db.get(Character, character_id)
    if not character:
        raise NotFoundError("character not found")
    if not is_admin and character.creator_id != user_id:
        raise PermissionDeniedError("only the creator can delete this character")

    for session in db.exec(select(ChatSession).where(ChatSession.character_id == character_id)).all():
        db.delete(session)
    deleted_id = int(character.id or 0)
    db.delete(character)
    db.commit()
    return deleted_id
