from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.log_config import logger
from webtoon_studio.parser import LLMOutputError, coerce_text, parse_json_object

from ...utils import api_error, ordered_scene_entries
from ..genai_helper import (
    create_genai_client,
    generate_text_content,
    get_response_text,
    raise_upstream_error,
)
from .prompt import build_prompt
from .schema import GenerateScenesRequest, GenerateScenesResponse, SceneText

router = APIRouter(prefix="/api", tags=["webtoon"])


def to_scene_text(entry: dict[str, Any]) -> SceneText:
    """Both fields must be present and non-empty."""
    story_text = coerce_text(entry.get("Story_Text"))
    description = coerce_text(entry.get("Scene_Description"))
    if not story_text or not description:
        raise LLMOutputError("invalid_shape", "Scene is missing Story_Text or Scene_Description")
    return SceneText(Story_Text=story_text, Scene_Description=description)


def validate_scenes(parsed: dict[str, Any]) -> dict[str, SceneText]:
    raw_scenes = parsed.get("scenes")
    if not raw_scenes:
        raise LLMOutputError("invalid_shape", "Missing scenes")
    entries = ordered_scene_entries(raw_scenes)
    if not entries:
        raise LLMOutputError("invalid_shape", "Missing scenes")
    scenes = {f"scene_{index}": to_scene_text(entry) for index, (_, entry) in enumerate(entries, start=1)}

    total = parsed.get("total_scenes")
    if total is not None:
        try:
            total_value = int(total)
        except (TypeError, ValueError) as exc:
            raise LLMOutputError("invalid_shape", "total_scenes is not a number") from exc
        if total_value != len(scenes):
            raise LLMOutputError(
                "invalid_shape",
                f"total_scenes ({total_value}) does not match scene count ({len(scenes)})",
            )
    return scenes


@router.post("/generate-scenes", response_model=GenerateScenesResponse)
async def generate_scenes(
    request: GenerateScenesRequest,
    caller: Caller = Depends(verify_session),
    config: WebtoonConfig = Depends(get_config),
) -> GenerateScenesResponse:
    """Split a story into the requested number of scenes."""
    story = (request.story or "").strip()
    if not story:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Story is required")

    logger.info("webtoon.generate-scenes request user=%s storyChars=%d", caller.user_id, len(story))
    client = create_genai_client(config)
    system_prompt, user_prompt = build_prompt(story)

    try:
        response = generate_text_content(
            client,
            config.text_model,
            system_prompt,
            user_prompt,
            temperature=0.4,
            json_output=True,
        )
        parsed = parse_json_object(get_response_text(response))
        scenes = validate_scenes(parsed)
    except Exception as exc:
        raise_upstream_error(exc, "webtoon.generate-scenes", "Failed to generate scenes")

    logger.info("webtoon.generate-scenes success user=%s scenes=%d", caller.user_id, len(scenes))
    return GenerateScenesResponse(
        success=True,
        scenes=scenes,
        story_title=coerce_text(parsed.get("story_title")) or None,
        total_scenes=len(scenes),
    )
