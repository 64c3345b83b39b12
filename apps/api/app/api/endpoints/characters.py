from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal, get_optional_principal
from app.core.database import get_session
from app.schemas.chat import CharacterCreateRequest, CharacterDeleteResult, CharacterRead
from app.services.character_service import (
    create_character,
    delete_character,
    list_characters,
    require_character,
)
from app.services.errors import NotFoundError

router = APIRouter(prefix="/characters", tags=["characters"])


@router.get("", response_model=list[CharacterRead])
def characters(
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    return list_characters(db, viewer_id=principal.user_id if principal else None)


@router.get("/{character_id}", response_model=CharacterRead)
def character_detail(
    character_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal | None = Depends(get_optional_principal),
):
    try:
        character = require_character(db, character_id)
        viewer_id = principal.user_id if principal else None
        if not character.is_public and character.creator_id != viewer_id:
            raise NotFoundError("character not found")
    except ValueError as exc:
        raise_http_error(exc)
    return character


@router.post("", response_model=CharacterRead)
def new_character(
    payload: CharacterCreateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return create_character(db, creator_id=principal.user_id, **payload.model_dump())
    except ValueError as exc:
        raise_http_error(exc)


@router.delete("/{character_id}", response_model=CharacterDeleteResult)
def remove_character(
    character_id: int,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        deleted_id = delete_character(
            db,
            character_id=character_id,
            user_id=principal.user_id,
            is_admin=principal.is_admin,
        )
    except ValueError as exc:
        raise_http_error(exc)
    return CharacterDeleteResult(deleted_character_id=deleted_id)
