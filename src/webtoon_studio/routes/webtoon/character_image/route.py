from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.credits import reserved_credit
from webtoon_studio.db import get_db
from webtoon_studio.log_config import logger
from webtoon_studio.storage import ObjectStorage, get_storage

from ...utils import api_error, get_owned_project, to_data_url
from ..genai_helper import (
    build_user_contents,
    create_genai_client,
    generate_image,
    raise_upstream_error,
)
from ..image_helper import persist_character_image, require_image
from .prompt import build_prompt
from .schema import CharacterImageRequest, ImageResponse

router = APIRouter(prefix="/api", tags=["webtoon"])


async def _generate_character_image(
    request: CharacterImageRequest,
    caller: Caller,
    db: Session,
    storage: ObjectStorage,
    config: WebtoonConfig,
    *,
    follow_art_style: bool,
    label: str,
) -> ImageResponse:
    description = (request.description or "").strip()
    if not description:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Character description is required")
    name = (request.name or "").strip()
    if request.projectId:
        if not name:
            raise api_error(status.HTTP_400_BAD_REQUEST, "Character name is required to save the image")
        get_owned_project(db, caller, request.projectId)

    logger.info(
        "%s request user=%s project=%s name=%s artStyle=%s",
        label,
        caller.user_id,
        request.projectId,
        name,
        request.artStyle,
    )
    client = create_genai_client(config)
    prompt = build_prompt(name, description, request.artStyle, follow_art_style=follow_art_style)

    path: str | None = None
    with reserved_credit(db, caller.user_id, free_credits=config.free_monthly_credits):
        try:
            response = generate_image(client, config.image_model, build_user_contents(prompt))
        except Exception as exc:
            raise_upstream_error(exc, label, "Failed to generate image")
        image_bytes, mime_type, _ = require_image(response, label)
        if request.projectId:
            path = persist_character_image(
                db,
                storage,
                caller,
                request.projectId,
                name,
                image_bytes,
                description=description,
                art_style=request.artStyle,
            )

    logger.info("%s success user=%s bytes=%d path=%s", label, caller.user_id, len(image_bytes), path)
    return ImageResponse(success=True, image=to_data_url(image_bytes, mime_type), path=path)


@router.post("/generate-character-image", response_model=ImageResponse, response_model_exclude_none=True)
async def generate_character_image(
    request: CharacterImageRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    config: WebtoonConfig = Depends(get_config),
) -> ImageResponse:
    """Generate a character sheet image."""
    return await _generate_character_image(
        request,
        caller,
        db,
        storage,
        config,
        follow_art_style=False,
        label="webtoon.generate-character-image",
    )


@router.post(
    "/generate-character-with-newArt",
    response_model=ImageResponse,
    response_model_exclude_none=True,
)
async def generate_character_with_new_art(
    request: CharacterImageRequest,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    config: WebtoonConfig = Depends(get_config),
) -> ImageResponse:
    """Regenerate a character sheet in a new art style."""
    return await _generate_character_image(
        request,
        caller,
        db,
        storage,
        config,
        follow_art_style=True,
        label="webtoon.generate-character-with-new-art",
    )
