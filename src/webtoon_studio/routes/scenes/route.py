from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.db import GeneratedScene, SceneImage, get_db, utcnow
from webtoon_studio.log_config import logger
from webtoon_studio.parser import coerce_text
from webtoon_studio.storage import ObjectStorage, get_storage, remove_quietly, scene_image_path

from ..utils import api_error, decode_data_url, get_owned_project, ordered_scene_entries, touch_project
from ..webtoon.image_helper import persist_scene_image
from .schema import DeleteSceneRequest, SaveSceneImageRequest, SaveScenesRequest, UpdateSceneRequest

router = APIRouter(prefix="/api", tags=["scenes"])


def _scene_fields(entry: dict[str, Any]) -> tuple[str, str]:
    story_text = coerce_text(entry.get("story_text", entry.get("Story_Text")))
    description = coerce_text(entry.get("scene_description", entry.get("Scene_Description")))
    return story_text, description


def _list_scenes(db: Session, caller: Caller, project_id: str) -> list[GeneratedScene]:
    return list(
        db.execute(
            select(GeneratedScene)
            .where(GeneratedScene.project_id == project_id, GeneratedScene.user_id == caller.user_id)
            .order_by(GeneratedScene.scene_no.asc())
        ).scalars()
    )


@router.get("/generated-scenes")
async def get_generated_scenes(
    projectId: str | None = None,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Return the project's scenes in scene order."""
    if not projectId:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId required")
    return {"scenes": [scene.to_dict() for scene in _list_scenes(db, caller, projectId)]}


@router.post("/generated-scenes")
async def save_generated_scenes(
    request: SaveScenesRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Insert or replace scenes by ``scene_no``."""
    entries = ordered_scene_entries(request.scenes)
    if not request.projectId or not entries:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId and scenes required")
    project = get_owned_project(db, caller, request.projectId)

    existing = {scene.scene_no: scene for scene in _list_scenes(db, caller, project.id)}
    inserted = updated = 0
    for scene_no, entry in entries:
        story_text, description = _scene_fields(entry)
        scene = existing.get(scene_no)
        if scene is None:
            scene = GeneratedScene(
                project_id=project.id,
                user_id=caller.user_id,
                scene_no=scene_no,
                story_text=story_text,
                scene_description=description,
            )
            db.add(scene)
            existing[scene_no] = scene
            inserted += 1
        else:
            scene.story_text = story_text
            scene.scene_description = description
            scene.updated_at = utcnow()
            updated += 1
    db.commit()
    touch_project(db, project.id, caller.user_id)

    logger.info(
        "scenes.save user=%s project=%s inserted=%d updated=%d",
        caller.user_id,
        project.id,
        inserted,
        updated,
    )
    return {"success": True, "scenes": [scene.to_dict() for scene in _list_scenes(db, caller, project.id)]}


@router.patch("/generated-scenes")
async def update_generated_scene(
    request: UpdateSceneRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Update one scene's story text or description."""
    if not request.projectId or request.scene_no is None or request.scene_description is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId, scene_no, scene_description required")
    scene = db.execute(
        select(GeneratedScene).where(
            GeneratedScene.project_id == request.projectId,
            GeneratedScene.user_id == caller.user_id,
            GeneratedScene.scene_no == request.scene_no,
        )
    ).scalar_one_or_none()
    if scene is None:
        raise api_error(status.HTTP_404_NOT_FOUND, "Scene not found")

    scene.scene_description = request.scene_description
    if request.story_text is not None:
        scene.story_text = request.story_text
    scene.updated_at = utcnow()
    db.commit()
    touch_project(db, request.projectId, caller.user_id)
    logger.info("scenes.update user=%s project=%s scene=%s", caller.user_id, request.projectId, request.scene_no)
    return {"success": True, "scene": scene.to_dict()}


@router.post("/delete-scene")
async def delete_scene(
    request: DeleteSceneRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> dict[str, Any]:
    """Delete a scene together with its stored images."""
    if not request.projectId or request.sceneNo is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId and sceneNo required")
    project_id, scene_no = request.projectId, request.sceneNo

    stored = db.execute(
        select(SceneImage.image_path).where(
            SceneImage.project_id == project_id,
            SceneImage.user_id == caller.user_id,
            SceneImage.scene_no == scene_no,
        )
    ).scalars().all()
    db.execute(
        delete(SceneImage).where(
            SceneImage.project_id == project_id,
            SceneImage.user_id == caller.user_id,
            SceneImage.scene_no == scene_no,
        )
    )
    db.execute(
        delete(GeneratedScene).where(
            GeneratedScene.project_id == project_id,
            GeneratedScene.user_id == caller.user_id,
            GeneratedScene.scene_no == scene_no,
        )
    )
    db.commit()

    paths = {path for path in stored if path}
    paths.add(scene_image_path(caller.user_id, project_id, scene_no))
    paths.add(scene_image_path(caller.user_id, project_id, scene_no, manual=True))
    remove_quietly(storage, sorted(paths))
    touch_project(db, project_id, caller.user_id)
    logger.info("scenes.delete user=%s project=%s scene=%s objects=%d", caller.user_id, project_id, scene_no, len(paths))
    return {"success": True}


@router.post("/save-scene-image")
async def save_scene_image(
    request: SaveSceneImageRequest,
    response: Response,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> dict[str, Any]:
    """Store a manually supplied image for a scene."""
    if not request.imageDataUrl or not request.projectId or request.sceneNo is None:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "imageDataUrl, projectId and numeric sceneNo are required",
        )
    image_bytes, _ = decode_data_url(request.imageDataUrl)
    get_owned_project(db, caller, request.projectId)

    path = persist_scene_image(
        db,
        storage,
        caller,
        request.projectId,
        request.sceneNo,
        image_bytes,
        manual=True,
    )
    response.headers["Cache-Control"] = "no-store"
    return {"success": True, "path": path}
