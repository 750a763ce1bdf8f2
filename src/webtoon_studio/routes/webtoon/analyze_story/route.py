from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.log_config import logger
from webtoon_studio.parser import LLMOutputError, coerce_text, parse_json_object

from ...utils import api_error
from ..genai_helper import (
    create_genai_client,
    generate_text_content,
    get_response_text,
    raise_upstream_error,
)
from .prompt import MAX_CHARACTERS, build_prompt
from .schema import AnalyzedCharacter, AnalyzeStoryRequest, AnalyzeStoryResponse

router = APIRouter(prefix="/api", tags=["webtoon"])


def _normalize_characters(raw_characters: Any) -> list[AnalyzedCharacter]:
    if not isinstance(raw_characters, list):
        raise LLMOutputError("invalid_shape", "Response missing characters array")
    characters: list[AnalyzedCharacter] = []
    for index, entry in enumerate(raw_characters):
        if not isinstance(entry, dict):
            continue
        description = coerce_text(entry.get("Character_Description") or entry.get("description"))
        if not description:
            continue
        characters.append(
            AnalyzedCharacter(
                id=coerce_text(entry.get("id")) or f"character_{index + 1}",
                name=coerce_text(entry.get("name")) or f"Character {index + 1}",
                description=description,
            )
        )
        if len(characters) >= MAX_CHARACTERS:
            break
    if not characters:
        raise LLMOutputError("invalid_shape", "Response contained no usable characters")
    return characters


@router.post("/analyze-story", response_model=AnalyzeStoryResponse)
async def analyze_story(
    request: AnalyzeStoryRequest,
    caller: Caller = Depends(verify_session),
    config: WebtoonConfig = Depends(get_config),
) -> AnalyzeStoryResponse:
    """Extract up to six main characters from a story."""
    story = (request.story or "").strip()
    if not story:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Story content is required")

    logger.info(
        "webtoon.analyze-story request user=%s storyChars=%d artStyle=%s",
        caller.user_id,
        len(story),
        request.artStyle,
    )
    client = create_genai_client(config)
    system_prompt, user_prompt = build_prompt(story, request.artStyle)

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
        characters = _normalize_characters(parsed.get("characters"))
    except Exception as exc:
        raise_upstream_error(exc, "webtoon.analyze-story", "Failed to analyze story")

    logger.info("webtoon.analyze-story success user=%s characters=%d", caller.user_id, len(characters))
    story_title = coerce_text(parsed.get("story_title")) or None
    return AnalyzeStoryResponse(success=True, characters=characters, story_title=story_title)
