"""Scene panel rendering.

A request moves through ``generating_image`` (with retry on 429/5xx), the
optional save to the project scene, and then a best-effort
``generating_effects`` pass that overlays sound effects. One credit is held
for the render and refunded if it fails; the effects pass never fails the
request.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.credits import reserved_credit
from webtoon_studio.db import get_db
from webtoon_studio.log_config import logger
from webtoon_studio.storage import ObjectStorage, get_storage

from ...utils import api_error, to_data_url
from ..edit_image.prompt import build_sound_effects_prompt
from ..genai_helper import (
    build_multimodal_contents,
    create_genai_client,
    extract_image_and_text,
    generate_image,
    generate_image_with_retry,
    get_response_parts,
    raise_upstream_error,
)
from ..image_helper import (
    persist_scene_image,
    require_image,
    resolve_scene_target,
    select_reference_images,
)
from .prompt import build_prompt
from .schema import SceneImageRequest, SceneImageResponse

router = APIRouter(prefix="/api", tags=["webtoon"])

LABEL = "webtoon.generate-scene-image"


def _apply_sound_effects(
    client: Any,
    model: str,
    image_bytes: bytes,
    mime_type: str,
    story_text: str,
) -> tuple[bytes, str] | None:
    """Overlay sound effects on a rendered panel; ``None`` when it did not work."""
    contents = build_multimodal_contents(
        build_sound_effects_prompt(story_text),
        [(image_bytes, mime_type)],
    )
    try:
        response = generate_image(client, model, contents)
    except Exception as exc:
        logger.warning("%s sound effects failed error=%s", LABEL, exc)
        return None
    effect_bytes, effect_mime, text = extract_image_and_text(get_response_parts(response))
    if not effect_bytes:
        logger.warning("%s sound effects returned no image text=%s", LABEL, text[:200])
        return None
    return effect_bytes, effect_mime


@router.post("/generate-scene-image", response_model=SceneImageResponse, response_model_exclude_none=True)
async def generate_scene_image(
    request: SceneImageRequest,
    response: Response,
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    config: WebtoonConfig = Depends(get_config),
) -> SceneImageResponse:
    """Render a webtoon panel for one scene."""
    scene_description = (request.sceneDescription or "").strip()
    story_text = (request.storyText or "").strip()
    if not scene_description or not story_text:
        raise api_error(status.HTTP_400_BAD_REQUEST, "sceneDescription and storyText are required")
    save_to_scene = resolve_scene_target(db, caller, request.projectId, request.sceneNo)

    reference_urls = request.reference_urls()
    references = select_reference_images(reference_urls, config.reference_image_budget_bytes)
    logger.info(
        "%s request user=%s project=%s scene=%s references=%d/%d referenceBytes=%d soundEffects=%s",
        LABEL,
        caller.user_id,
        request.projectId,
        request.sceneNo,
        len(references),
        len(reference_urls),
        sum(len(data) for data, _ in references),
        request.addSoundEffects,
    )

    client = create_genai_client(config)
    prompt = build_prompt(scene_description, story_text, request.artStyle, len(references))
    contents = build_multimodal_contents(prompt, references)

    path: str | None = None
    with reserved_credit(db, caller.user_id, free_credits=config.free_monthly_credits):
        try:
            model_response = await generate_image_with_retry(
                client,
                config.image_model,
                contents,
                max_attempts=config.image_max_attempts,
                base_delay=config.image_retry_base_delay,
                label=LABEL,
            )
        except Exception as exc:
            raise_upstream_error(exc, LABEL, "Failed to generate scene image")
        image_bytes, mime_type, _ = require_image(model_response, LABEL)
        if save_to_scene:
            assert request.projectId is not None and request.sceneNo is not None
            path = persist_scene_image(db, storage, caller, request.projectId, request.sceneNo, image_bytes)

    effects_applied = False
    if request.addSoundEffects:
        with_effects = _apply_sound_effects(client, config.image_model, image_bytes, mime_type, story_text)
        if with_effects is not None:
            image_bytes, mime_type = with_effects
            effects_applied = True
            if save_to_scene:
                assert request.projectId is not None and request.sceneNo is not None
                try:
                    path = persist_scene_image(
                        db, storage, caller, request.projectId, request.sceneNo, image_bytes
                    )
                except Exception as exc:
                    logger.warning("%s saving sound effects failed error=%s", LABEL, exc)

    logger.info(
        "%s success user=%s bytes=%d path=%s effectsApplied=%s",
        LABEL,
        caller.user_id,
        len(image_bytes),
        path,
        effects_applied,
    )
    response.headers["Cache-Control"] = "no-store"
    return SceneImageResponse(
        success=True,
        image=to_data_url(image_bytes, mime_type),
        path=path,
        effectsApplied=effects_applied,
    )
