"""Helpers shared by the route handlers."""
from __future__ import annotations

import base64
import binascii
import re
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller
from webtoon_studio.db import Project, utcnow
from webtoon_studio.log_config import logger

_DATA_URL = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^,]*)?,(?P<payload>.*)$", re.DOTALL)


def api_error(status_code: int, error: str, details: Any = None) -> HTTPException:
    """HTTPException whose body renders as ``{"error": ..., "details": ...}``."""
    detail: dict[str, Any] = {"error": error}
    if details is not None:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


def get_owned_project(db: Session, caller: Caller, project_id: str | None) -> Project:
    if not project_id:
        raise api_error(status.HTTP_400_BAD_REQUEST, "projectId required")
    project = db.execute(
        select(Project).where(Project.id == project_id, Project.user_id == caller.user_id)
    ).scalar_one_or_none()
    if project is None:
        raise api_error(status.HTTP_404_NOT_FOUND, "Project not found")
    return project


def touch_project(db: Session, project_id: str, user_id: str) -> None:
    """Bump the project's ``updated_at``; failures are logged only."""
    try:
        db.execute(
            update(Project)
            .where(Project.id == project_id, Project.user_id == user_id)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("projects.touch failed project=%s error=%s", project_id, exc)


def split_data_url(value: str) -> tuple[str | None, str | None]:
    """Return ``(mime_type, base64_payload)`` of a data URL, or ``(None, None)``."""
    match = _DATA_URL.match(value.strip())
    if not match:
        return None, None
    payload = match.group("payload")
    return match.group("mime"), payload or None


def decode_data_url(value: str | None, *, field: str = "imageDataUrl") -> tuple[bytes, str]:
    """Decode an image data URL, raising 400 when it is malformed."""
    if not value or not isinstance(value, str):
        raise api_error(status.HTTP_400_BAD_REQUEST, f"{field} is required")
    mime_type, payload = split_data_url(value)
    if not payload:
        raise api_error(status.HTTP_400_BAD_REQUEST, f"Invalid {field}")
    try:
        data = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise api_error(status.HTTP_400_BAD_REQUEST, f"Invalid {field}") from exc
    if not data:
        raise api_error(status.HTTP_400_BAD_REQUEST, f"Invalid {field}")
    return data, mime_type or "image/png"


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "character"


_SCENE_KEY = re.compile(r"^scene_(\d+)$")


def ordered_scene_entries(scenes: Any) -> list[tuple[int, dict[str, Any]]]:
    """Normalise a ``scene_N`` map or a list of scenes into ``(scene_no, entry)`` pairs.

    Map entries are ordered by their numeric suffix; list entries use an
    explicit ``scene_no`` when present and their 1-based position otherwise.
    Entries that are not objects are dropped.
    """
    pairs: list[tuple[int, dict[str, Any]]] = []
    if isinstance(scenes, dict):
        for key, entry in scenes.items():
            match = _SCENE_KEY.match(str(key))
            if match and isinstance(entry, dict):
                pairs.append((int(match.group(1)), entry))
    elif isinstance(scenes, list):
        for index, entry in enumerate(scenes):
            if not isinstance(entry, dict):
                continue
            scene_no = entry.get("scene_no", entry.get("sceneNo"))
            pairs.append((scene_no if isinstance(scene_no, int) and scene_no > 0 else index + 1, entry))
    pairs.sort(key=lambda pair: pair[0])
    return pairs
