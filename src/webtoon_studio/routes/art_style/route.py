from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.db import ArtStyle, get_db, utcnow
from webtoon_studio.log_config import logger

from ..utils import api_error, get_owned_project, touch_project
from .schema import ArtStyleRequest

router = APIRouter(prefix="/api", tags=["art-style"])


def _find_art_style(db: Session, caller: Caller, project_id: str) -> ArtStyle | None:
    return db.execute(
        select(ArtStyle).where(ArtStyle.project_id == project_id, ArtStyle.user_id == caller.user_id)
    ).scalar_one_or_none()


def _require_payload(request: ArtStyleRequest) -> tuple[str, str]:
    if not request.projectId or request.description is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId and description required")
    return request.projectId, request.description


@router.get("/art-style")
async def get_art_style(
    projectId: str | None = None,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Return the project's art style, if one is saved."""
    if not projectId:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId required")
    art_style = _find_art_style(db, caller, projectId)
    return {"artStyle": art_style.to_dict() if art_style else None}


@router.post("/art-style")
async def create_art_style(
    request: ArtStyleRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Save the project's art style."""
    project_id, description = _require_payload(request)
    get_owned_project(db, caller, project_id)
    if _find_art_style(db, caller, project_id) is not None:
        raise api_error(status.HTTP_409_CONFLICT, "Art style already exists for project")

    art_style = ArtStyle(project_id=project_id, user_id=caller.user_id, description=description)
    db.add(art_style)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise api_error(status.HTTP_409_CONFLICT, "Art style already exists for project") from exc
    touch_project(db, project_id, caller.user_id)
    logger.info("art-style.create user=%s project=%s", caller.user_id, project_id)
    return {"artStyle": art_style.to_dict()}


@router.patch("/art-style")
async def update_art_style(
    request: ArtStyleRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Replace the project's art style description."""
    project_id, description = _require_payload(request)
    art_style = _find_art_style(db, caller, project_id)
    if art_style is None:
        raise api_error(status.HTTP_404_NOT_FOUND, "Art style not found for project")
    art_style.description = description
    art_style.updated_at = utcnow()
    db.commit()
    touch_project(db, project_id, caller.user_id)
    logger.info("art-style.update user=%s project=%s", caller.user_id, project_id)
    return {"success": True, "artStyle": art_style.to_dict()}
