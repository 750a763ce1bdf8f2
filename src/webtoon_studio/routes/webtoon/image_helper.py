"""Shared steps of the image endpoints: reference selection, PNG storage, row upserts."""
from __future__ import annotations

import io
from typing import Any

from fastapi import status
from PIL import Image
from sqlalchemy import select
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller
from webtoon_studio.db import Character, GeneratedScene, SceneImage
from webtoon_studio.log_config import logger
from webtoon_studio.storage import (
    ObjectStorage,
    StorageError,
    character_image_path,
    remove_quietly,
    scene_image_path,
)

from ..utils import (
    api_error,
    decode_data_url,
    get_owned_project,
    slugify,
    split_data_url,
    touch_project,
)
from .genai_helper import extract_image_and_text, get_response_parts

MAX_REFERENCE_IMAGES = 6


def normalize_to_png(image_bytes: bytes) -> tuple[bytes, str]:
    """Re-encode an image as PNG; undecodable payloads are passed through."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA")
            output = io.BytesIO()
            img.save(output, format="PNG")
            return output.getvalue(), "image/png"
    except Exception as exc:
        logger.warning("Failed to normalize image to PNG: %s", exc)
        return image_bytes, "image/png"


def select_reference_images(
    references: list[str] | None,
    budget_bytes: int,
    max_images: int = MAX_REFERENCE_IMAGES,
) -> list[tuple[bytes, str]]:
    """Decode reference data URLs in order while they fit in ``budget_bytes``.

    The budget is measured on the base64 payload since that is what goes over
    the wire. References that would overflow it are skipped; invalid ones are
    skipped with a warning.
    """
    selected: list[tuple[bytes, str]] = []
    used = 0
    for reference in references or []:
        if len(selected) >= max_images:
            break
        if not reference:
            continue
        _, payload = split_data_url(reference)
        if not payload:
            logger.warning("Invalid reference image payload, skipping")
            continue
        size = len(payload)
        if used + size > budget_bytes:
            logger.info("reference image skipped size=%d used=%d budget=%d", size, used, budget_bytes)
            continue
        try:
            data, mime_type = decode_data_url(reference, field="reference image")
        except Exception:
            logger.warning("Invalid reference image payload, skipping")
            continue
        selected.append((data, mime_type))
        used += size
    return selected


def require_image(response: Any, label: str) -> tuple[bytes, str, str]:
    """Pull the image out of a model response, or raise 502."""
    image_bytes, mime_type, text = extract_image_and_text(get_response_parts(response))
    if not image_bytes:
        logger.error("%s no image returned text=%s", label, text[:200])
        raise api_error(
            status.HTTP_502_BAD_GATEWAY,
            "No image returned from model",
            {"text": text} if text else None,
        )
    return image_bytes, mime_type, text


def _upload_png(storage: ObjectStorage, path: str, image_bytes: bytes) -> bytes:
    png_bytes, mime_type = normalize_to_png(image_bytes)
    try:
        storage.upload(path, png_bytes, mime_type)
    except StorageError as exc:
        logger.error("storage.upload failed path=%s error=%s", path, exc)
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed", str(exc)) from exc
    return png_bytes


def persist_scene_image(
    db: Session,
    storage: ObjectStorage,
    caller: Caller,
    project_id: str,
    scene_no: int,
    image_bytes: bytes,
    *,
    manual: bool = False,
) -> str:
    """Store a scene render and upsert its ``generated_scene_images`` row."""
    path = scene_image_path(caller.user_id, project_id, scene_no, manual=manual)
    _upload_png(storage, path, image_bytes)

    scene = db.execute(
        select(GeneratedScene).where(
            GeneratedScene.project_id == project_id,
            GeneratedScene.user_id == caller.user_id,
            GeneratedScene.scene_no == scene_no,
        )
    ).scalar_one_or_none()
    row = db.execute(
        select(SceneImage).where(
            SceneImage.project_id == project_id,
            SceneImage.scene_no == scene_no,
        )
    ).scalar_one_or_none()

    superseded: str | None = None
    if row is None:
        row = SceneImage(
            project_id=project_id,
            user_id=caller.user_id,
            scene_id=scene.id if scene else None,
            scene_no=scene_no,
            image_path=path,
        )
        db.add(row)
    else:
        if row.image_path != path:
            superseded = row.image_path
        row.image_path = path
        if scene is not None:
            row.scene_id = scene.id
    db.commit()

    if superseded:
        remove_quietly(storage, [superseded])
    touch_project(db, project_id, caller.user_id)
    logger.info("scene-image.persist project=%s scene=%s path=%s manual=%s", project_id, scene_no, path, manual)
    return path


def persist_character_image(
    db: Session,
    storage: ObjectStorage,
    caller: Caller,
    project_id: str,
    name: str,
    image_bytes: bytes,
    *,
    description: str | None = None,
    art_style: str | None = None,
) -> str:
    """Store a character sheet and point the character row at it."""
    path = character_image_path(caller.user_id, project_id, slugify(name))
    _upload_png(storage, path, image_bytes)

    character = db.execute(
        select(Character).where(
            Character.project_id == project_id,
            Character.user_id == caller.user_id,
            Character.name == name,
        )
    ).scalar_one_or_none()
    superseded: str | None = None
    if character is None:
        character = Character(
            project_id=project_id,
            user_id=caller.user_id,
            name=name,
            description=description,
            art_style=art_style,
            image_path=path,
        )
        db.add(character)
    else:
        if character.image_path and character.image_path != path:
            superseded = character.image_path
        character.image_path = path
    db.commit()

    if superseded:
        remove_quietly(storage, [superseded])
    touch_project(db, project_id, caller.user_id)
    logger.info("character-image.persist project=%s name=%s path=%s", project_id, name, path)
    return path


def resolve_scene_target(
    db: Session,
    caller: Caller,
    project_id: str | None,
    scene_no: int | None,
) -> bool:
    """Whether the result should be saved; validates the target project when it is."""
    if not project_id and scene_no is None:
        return False
    if not project_id or scene_no is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId and sceneNo must be provided together")
    get_owned_project(db, caller, project_id)
    return True
