from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.credits import reserved_credit
from webtoon_studio.db import get_db
from webtoon_studio.log_config import logger
from webtoon_studio.storage import ObjectStorage, get_storage

from ...utils import decode_data_url, to_data_url
from ..character_image.schema import ImageResponse
from ..genai_helper import (
    build_multimodal_contents,
    create_genai_client,
    generate_image,
    raise_upstream_error,
)
from ..image_helper import persist_scene_image, require_image, resolve_scene_target
from .prompt import (
    REMOVE_BACKGROUND_INSTRUCTION,
    build_edit_prompt,
    build_sound_effects_prompt,
)
from .schema import EditImageRequest, RemoveBackgroundRequest, SceneTarget, SoundEffectsRequest

router = APIRouter(prefix="/api", tags=["webtoon"])


async def _run_single_edit(
    *,
    prompt: str,
    image_data_url: str | None,
    target: SceneTarget,
    caller: Caller,
    db: Session,
    storage: ObjectStorage,
    config: WebtoonConfig,
    label: str,
    failure_message: str,
) -> ImageResponse:
    """One image-to-image call, saved to the target scene when one is given."""
    source_bytes, source_mime = decode_data_url(image_data_url)
    save_to_scene = resolve_scene_target(db, caller, target.projectId, target.sceneNo)

    logger.info(
        "%s request user=%s project=%s scene=%s sourceBytes=%d",
        label,
        caller.user_id,
        target.projectId,
        target.sceneNo,
        len(source_bytes),
    )
    client = create_genai_client(config)
    contents = build_multimodal_contents(prompt, [(source_bytes, source_mime)])

    path: str | None = None
    with reserved_credit(db, caller.user_id, free_credits=config.free_monthly_credits):
        try:
            response = generate_image(client, config.image_model, contents)
        except Exception as exc:
            raise_upstream_error(exc, label, failure_message)
        image_bytes, mime_type, _ = require_image(response, label)
        if save_to_scene:
            assert target.projectId is not None and target.sceneNo is not None
            path = persist_scene_image(db, storage, caller, target.projectId, target.sceneNo, image_bytes)

    logger.info("%s success user=%s bytes=%d path=%s", label, caller.user_id, len(image_bytes), path)
    return ImageResponse(success=True, image=to_data_url(image_bytes, mime_type), path=path)


@router.post("/edit-scene-image", response_model=ImageResponse, response_model_exclude_none=True)
async def edit_scene_image(
    request: EditImageRequest,
    response: Response,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    config: WebtoonConfig = Depends(get_config),
) -> ImageResponse:
    """Edit a scene image following a text instruction."""
    response.headers["Cache-Control"] = "no-store"
    return await _run_single_edit(
        prompt=build_edit_prompt(request.instruction),
        image_data_url=request.imageDataUrl,
        target=request,
        caller=caller,
        db=db,
        storage=storage,
        config=config,
        label="webtoon.edit-scene-image",
        failure_message="Failed to edit scene image",
    )


@router.post("/remove-background", response_model=ImageResponse, response_model_exclude_none=True)
async def remove_background(
    request: RemoveBackgroundRequest,
    response: Response,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    config: WebtoonConfig = Depends(get_config),
) -> ImageResponse:
    """Remove the background from an image."""
    response.headers["Cache-Control"] = "no-store"
    return await _run_single_edit(
        prompt=REMOVE_BACKGROUND_INSTRUCTION,
        image_data_url=request.imageDataUrl,
        target=request,
        caller=caller,
        db=db,
        storage=storage,
        config=config,
        label="webtoon.remove-background",
        failure_message="Failed to remove background",
    )


@router.post("/add-sound-effects", response_model=ImageResponse, response_model_exclude_none=True)
async def add_sound_effects(
    request: SoundEffectsRequest,
    response: Response,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    config: WebtoonConfig = Depends(get_config),
) -> ImageResponse:
    """Add onomatopoeia sound effects to a scene image."""
    response.headers["Cache-Control"] = "no-store"
    return await _run_single_edit(
        prompt=build_sound_effects_prompt(request.storyText),
        image_data_url=request.imageDataUrl,
        target=request,
        caller=caller,
        db=db,
        storage=storage,
        config=config,
        label="webtoon.add-sound-effects",
        failure_message="Failed to add sound effects",
    )
