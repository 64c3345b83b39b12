from datetime import datetime, timezone
from typing import Any, Iterable
import logging
from uuid import uuid4

from sqlmodel import Session, select

from app.models.chat import ChatSession
from app.services.errors import NotFoundError, PermissionDeniedError


_LOGGER = logging.getLogger(__name__)
MESSAGE_ROLES: frozenset[str] = frozenset({"user", "assistant"})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return str(uuid4())


def build_message(role: str, content: str, *, timestamp: datetime | None = None) -> dict[str, Any]:
    normalized_role = str(role or "").strip().lower()
    if normalized_role not in MESSAGE_ROLES:
        raise ValueError(f"invalid message role: {role}")
    return {
        "role": normalized_role,
        "content": str(content or ""),
        "timestamp": (timestamp or _utc_now()).isoformat(),
    }


def _normalize_messages(messages: Any) -> list[dict[str, Any]]:
    if not isinstance(messages, list):
        return []
    normalized: list[dict[str, Any]] = []
    for item in messages:
        if not isinstance(item, dict):
            continue
        role = str(item.get("role") or "").strip().lower()
        if role not in MESSAGE_ROLES:
            continue
        normalized.append(
            {
                "role": role,
                "content": str(item.get("content") or ""),
                "timestamp": str(item.get("timestamp") or _utc_now().isoformat()),
            }
        )
    return normalized


def find_latest_session(db: Session, *, user_id: str, character_id: int) -> ChatSession | None:
    stmt = (
        select(ChatSession)
        .where(
            ChatSession.user_id == user_id,
            ChatSession.character_id == character_id,
        )
        .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
        .limit(1)
    )
    return db.exec(stmt).first()


def create_chat_session(db: Session, *, user_id: str, character_id: int) -> ChatSession:
    now = _utc_now()
    session = ChatSession(
        session_id=new_session_id(),
        user_id=user_id,
        character_id=character_id,
        messages=[],
        created_at=now,
        updated_at=now,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def find_or_create_chat_session(db: Session, *, user_id: str, character_id: int) -> tuple[ChatSession, bool]:
    """Return the newest session for (user, character), creating one when none exists.

    The lookup and the insert are separate round trips, so two concurrent first
    messages can both miss and create two sessions. Later lookups simply pick
    the most recent one.
    """
    existing = find_latest_session(db, user_id=user_id, character_id=character_id)
    if existing is not None:
        return existing, True
    created = create_chat_session(db, user_id=user_id, character_id=character_id)
    _LOGGER.info("created chat session %s for user=%s character=%s", created.session_id, user_id, character_id)
    return created, False


def get_chat_session(db: Session, session_id: str) -> ChatSession | None:
    stmt = select(ChatSession).where(ChatSession.session_id == str(session_id or "").strip())
    return db.exec(stmt).first()


def get_owned_chat_session(db: Session, *, session_id: str, user_id: str) -> ChatSession:
    session = get_chat_session(db, session_id)
    if not session:
        raise NotFoundError("chat session not found")
    if str(session.user_id) != str(user_id):
        raise PermissionDeniedError("chat session access denied")
    return session


def list_user_sessions(
    db: Session,
    *,
    user_id: str,
    character_id: int | None = None,
    limit: int = 24,
) -> Iterable[ChatSession]:
    size = max(min(int(limit), 100), 1)
    stmt = select(ChatSession).where(ChatSession.user_id == user_id)
    if character_id is not None:
        stmt = stmt.where(ChatSession.character_id == character_id)
    stmt = stmt.order_by(ChatSession.updated_at.desc(), ChatSession.id.desc()).limit(size)
    return db.exec(stmt).all()


def get_chat_messages(db: Session, *, session_id: str, user_id: str) -> list[dict[str, Any]]:
    session = get_owned_chat_session(db, session_id=session_id, user_id=user_id)
    return _normalize_messages(session.messages)


def append_chat_messages(
    db: Session,
    *,
    session_id: str,
    user_id: str,
    new_messages: list[dict[str, Any]],
) -> ChatSession:
    # Read-modify-write of the whole list; concurrent writers lose updates.
    session = get_owned_chat_session(db, session_id=session_id, user_id=user_id)
    merged = _normalize_messages(session.messages) + _normalize_messages(new_messages)
    session.messages = merged
    session.updated_at = _utc_now()
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def replace_chat_messages(
    db: Session,
    *,
    session_id: str,
    user_id: str,
    messages: list[dict[str, Any]],
) -> ChatSession:
    session = get_owned_chat_session(db, session_id=session_id, user_id=user_id)
    session.messages = _normalize_messages(messages)
    session.updated_at = _utc_now()
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def delete_chat_session(db: Session, *, session_id: str, user_id: str) -> str:
    session = get_owned_chat_session(db, session_id=session_id, user_id=user_id)
    deleted_session_id = str(session.session_id)
    db.delete(session)
    db.commit()
    return deleted_session_id
