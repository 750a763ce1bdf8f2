from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.db import Character, get_db, utcnow
from webtoon_studio.log_config import logger
from webtoon_studio.storage import ObjectStorage, get_storage, remove_quietly

from ..utils import api_error, get_owned_project, touch_project
from .schema import CharacterRequest

router = APIRouter(prefix="/api", tags=["characters"])


def _find_character(db: Session, caller: Caller, project_id: str, name: str) -> Character | None:
    return db.execute(
        select(Character).where(
            Character.project_id == project_id,
            Character.user_id == caller.user_id,
            Character.name == name,
        )
    ).scalar_one_or_none()


def _require_project_and_name(db: Session, caller: Caller, request: CharacterRequest) -> tuple[str, str]:
    name = (request.name or "").strip()
    if not request.projectId or not name:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId and name required")
    get_owned_project(db, caller, request.projectId)
    return request.projectId, name


def _insert_character(db: Session, caller: Caller, project_id: str, name: str, request: CharacterRequest) -> Character:
    """Insert a character; on a concurrent insert of the same name the existing row wins."""
    character = Character(
        project_id=project_id,
        user_id=caller.user_id,
        name=name,
        description=request.description,
        art_style=request.artStyle,
        image_path=request.imagePath,
    )
    db.add(character)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_character(db, caller, project_id, name)
        if existing is None:
            raise
        return existing
    touch_project(db, project_id, caller.user_id)
    return character


@router.get("/characters")
async def list_characters(
    projectId: str | None = None,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """List the characters of an owned project."""
    if not projectId:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId required")
    characters = db.execute(
        select(Character)
        .where(Character.project_id == projectId, Character.user_id == caller.user_id)
        .order_by(Character.updated_at.desc())
    ).scalars().all()
    return {"characters": [character.to_dict() for character in characters]}


@router.post("/characters")
async def create_character(
    request: CharacterRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Create a character; an existing one with the same name is returned unchanged."""
    project_id, name = _require_project_and_name(db, caller, request)
    existing = _find_character(db, caller, project_id, name)
    if existing is not None:
        logger.info("characters.create exists user=%s project=%s name=%s", caller.user_id, project_id, name)
        return {"character": existing.to_dict()}
    character = _insert_character(db, caller, project_id, name, request)
    logger.info("characters.create user=%s project=%s name=%s", caller.user_id, project_id, name)
    return {"character": character.to_dict()}


@router.patch("/characters")
async def update_character(
    request: CharacterRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> dict[str, Any]:
    """Update a character's fields, creating it when missing."""
    project_id, name = _require_project_and_name(db, caller, request)
    character = _find_character(db, caller, project_id, name)
    if character is None:
        character = _insert_character(db, caller, project_id, name, request)
        logger.info("characters.update created user=%s project=%s name=%s", caller.user_id, project_id, name)
        return {"character": character.to_dict()}

    provided = request.model_fields_set
    superseded: str | None = None
    if "description" in provided:
        character.description = request.description
    if "artStyle" in provided:
        character.art_style = request.artStyle
    if "imagePath" in provided:
        if request.imagePath and character.image_path and character.image_path != request.imagePath:
            superseded = character.image_path
        character.image_path = request.imagePath
    character.updated_at = utcnow()
    db.commit()

    if superseded:
        remove_quietly(storage, [superseded])
    touch_project(db, project_id, caller.user_id)
    logger.info("characters.update user=%s project=%s name=%s", caller.user_id, project_id, name)
    return {"character": character.to_dict()}
