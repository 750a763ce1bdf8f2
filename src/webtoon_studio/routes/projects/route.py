from __future__ import annotations

import math
from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.db import PROJECT_STATUSES, Character, Project, SceneImage, get_db, utcnow
from webtoon_studio.log_config import logger
from webtoon_studio.storage import ObjectStorage, get_storage, remove_quietly

from ..utils import api_error, get_owned_project
from .schema import CreateProjectRequest, PublishRequest, UpdateProjectRequest

router = APIRouter(prefix="/api", tags=["projects"])

MAX_STEP = 4


def clamp_steps(value: Any) -> int | None:
    """Steps as an int in ``0..4``; ``None`` when the value is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return max(0, min(MAX_STEP, int(number)))


@router.get("/projects")
async def get_projects(
    id: str | None = None,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """List the caller's projects, most recently updated first."""
    if id:
        project = get_owned_project(db, caller, id)
        return {"project": project.to_dict()}
    projects = db.execute(
        select(Project).where(Project.user_id == caller.user_id).order_by(Project.updated_at.desc())
    ).scalars().all()
    return {"projects": [project.to_dict() for project in projects]}


@router.post("/projects")
async def create_project(
    request: CreateProjectRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Create a draft project for the caller."""
    project = Project(
        user_id=caller.user_id,
        title=(request.title or "").strip() or "Webtoon Project",
        status="draft",
        steps=0,
    )
    db.add(project)
    db.commit()
    logger.info("projects.create user=%s project=%s", caller.user_id, project.id)
    return {"project": project.to_dict()}


@router.patch("/projects")
async def update_project(
    request: UpdateProjectRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Update the title, status, story, art style or steps of an owned project."""
    if not request.id:
        raise api_error(status.HTTP_400_BAD_REQUEST, "id required")
    project = get_owned_project(db, caller, request.id)

    if request.title:
        project.title = request.title
    if request.status:
        if request.status not in PROJECT_STATUSES:
            raise api_error(
                status.HTTP_400_BAD_REQUEST,
                "Invalid status",
                {"allowed": list(PROJECT_STATUSES)},
            )
        project.status = request.status
    if request.story is not None:
        project.story = request.story
    if request.art_style is not None:
        project.art_style = request.art_style
    steps = clamp_steps(request.steps)
    if steps is not None:
        project.steps = steps
    project.updated_at = utcnow()
    db.commit()
    logger.info("projects.update user=%s project=%s steps=%s", caller.user_id, project.id, project.steps)
    return {"project": project.to_dict()}


@router.delete("/projects")
async def delete_project(
    id: str | None = None,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> dict[str, Any]:
    """Delete an owned project and its stored images."""
    if not id:
        raise api_error(status.HTTP_400_BAD_REQUEST, "id required")
    project = get_owned_project(db, caller, id)

    stored_paths = [
        *db.execute(select(SceneImage.image_path).where(SceneImage.project_id == project.id)).scalars(),
        *db.execute(select(Character.image_path).where(Character.project_id == project.id)).scalars(),
    ]
    db.delete(project)
    db.commit()
    remove_quietly(storage, [path for path in stored_paths if path])
    logger.info("projects.delete user=%s project=%s objects=%d", caller.user_id, id, len(stored_paths))
    return {"success": True}


@router.post("/publish")
async def publish_project(
    request: PublishRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Mark an owned project as published."""
    project = get_owned_project(db, caller, request.projectId)
    project.status = "published"
    project.updated_at = utcnow()
    db.commit()
    logger.info("projects.publish user=%s project=%s", caller.user_id, project.id)
    return {"success": True}
