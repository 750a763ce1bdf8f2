from __future__ import annotations

from fastapi import APIRouter, Depends, status

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.log_config import logger
from webtoon_studio.parser import LLMOutputError, parse_json_object

from ...utils import api_error
from ..generate_scenes.route import to_scene_text
from ..genai_helper import (
    create_genai_client,
    generate_text_content,
    get_response_text,
    raise_upstream_error,
)
from .prompt import build_prompt
from .schema import InsertSceneRequest, InsertSceneResponse

router = APIRouter(prefix="/api", tags=["webtoon"])


@router.post("/insert-scene", response_model=InsertSceneResponse)
async def insert_scene(
    request: InsertSceneRequest,
    caller: Caller = Depends(verify_session),
    config: WebtoonConfig = Depends(get_config),
) -> InsertSceneResponse:
    """Write a new scene between two existing ones."""
    scenes = request.scenes or []
    index = request.insertAfterIndex
    if not scenes or index is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid payload")
    if index < -1 or index >= len(scenes):
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid payload",
            f"insertAfterIndex must be between -1 and {len(scenes) - 1}",
        )

    logger.info(
        "webtoon.insert-scene request user=%s scenes=%d insertAfterIndex=%d",
        caller.user_id,
        len(scenes),
        index,
    )
    client = create_genai_client(config)
    system_prompt, user_prompt = build_prompt(scenes, index)

    try:
        response = generate_text_content(
            client,
            config.text_model,
            system_prompt,
            user_prompt,
            temperature=0.5,
            json_output=True,
        )
        parsed = parse_json_object(get_response_text(response))
        raw_scene = parsed.get("scene")
        if not isinstance(raw_scene, dict):
            raise LLMOutputError("invalid_shape", "Missing scene")
        scene = to_scene_text(raw_scene)
    except Exception as exc:
        raise_upstream_error(exc, "webtoon.insert-scene", "Failed to insert scene")

    logger.info("webtoon.insert-scene success user=%s", caller.user_id)
    return InsertSceneResponse(success=True, scene=scene)
