"""Common helper functions for Google GenAI integration in webtoon routes."""
from __future__ import annotations

import asyncio
from typing import Any, NoReturn

from fastapi import HTTPException, status
from google import genai

from webtoon_studio.config import WebtoonConfig, sanitize_secret
from webtoon_studio.log_config import logger
from webtoon_studio.parser import LLMOutputError

from ..utils import api_error

RETRYABLE_STATUS_TEXT = {"RESOURCE_EXHAUSTED": 429, "UNAVAILABLE": 503, "INTERNAL": 500}


def get_gemini_api_key(config: WebtoonConfig) -> str:
    api_key = sanitize_secret(config.gemini_api_key)
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Gemini API key not configured",
        )
    return api_key


def create_genai_client(config: WebtoonConfig) -> Any:
    """Create and return a genai Client instance."""
    return genai.Client(api_key=get_gemini_api_key(config))


def extract_text_from_candidate(candidate: Any) -> str:
    """Extract text from a genai response candidate."""
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    fragments: list[str] = []
    for part in parts:
        text_value = getattr(part, "text", None)
        if isinstance(text_value, str) and text_value.strip():
            fragments.append(text_value.strip())
    return "\n".join(fragments).strip()


def get_response_text(response: Any) -> str | None:
    """Extract text from genai response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        text_value = getattr(response, "text", None)
        return text_value if isinstance(text_value, str) else None
    return extract_text_from_candidate(candidates[0])


def build_text_content_config(
    system_instruction: str | None = None,
    temperature: float | None = None,
    json_output: bool = False,
) -> Any:
    """Build GenerateContentConfig for text-only responses."""
    config_kwargs: dict[str, Any] = {
        "response_modalities": ["Text"],
        "candidate_count": 1,
    }
    if system_instruction:
        config_kwargs["system_instruction"] = system_instruction
    if temperature is not None:
        config_kwargs["temperature"] = temperature
    if json_output:
        config_kwargs["response_mime_type"] = "application/json"
    return genai.types.GenerateContentConfig(**config_kwargs)


def build_image_content_config() -> Any:
    return genai.types.GenerateContentConfig(response_modalities=["Text", "Image"])


def build_user_contents(prompt: str) -> list[dict[str, Any]]:
    return [{"role": "user", "parts": [{"text": prompt}]}]


def build_inline_part(data: bytes, mime_type: str) -> dict[str, Any]:
    return {"inline_data": {"mime_type": mime_type, "data": data}}


def build_multimodal_contents(prompt: str, images: list[tuple[bytes, str]]) -> list[dict[str, Any]]:
    """Contents with the text prompt first, followed by inline images."""
    parts: list[dict[str, Any]] = [{"text": prompt}]
    parts.extend(build_inline_part(data, mime_type) for data, mime_type in images)
    return [{"role": "user", "parts": parts}]


def generate_text_content(
    client: Any,
    model: str,
    system_prompt: str | None,
    user_prompt: str,
    temperature: float | None = None,
    json_output: bool = False,
) -> Any:
    """Generate text content using genai client."""
    content_config = build_text_content_config(system_prompt, temperature, json_output)
    contents = build_user_contents(user_prompt)
    logger.info("generate_text_content: model=%s, temperature=%s", model, temperature)
    return client.models.generate_content(
        model=model,
        contents=contents,
        config=content_config,
    )


def get_response_parts(response: Any) -> list[Any]:
    parts = getattr(response, "parts", None) or []
    if parts:
        return parts
    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        return getattr(content, "parts", None) or []
    return []


def extract_image_and_text(parts: list[Any]) -> tuple[bytes | None, str, str]:
    """Return the last inline image, its mime type and the joined text parts."""
    texts: list[str] = []
    image_bytes: bytes | None = None
    mime_type = "image/png"

    for part in parts:
        text_value = getattr(part, "text", None)
        if isinstance(text_value, str) and text_value.strip():
            texts.append(text_value.strip())

        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data is not None else None
        candidate_mime = getattr(inline_data, "mime_type", None) if inline_data is not None else None
        if not data:
            continue
        if isinstance(data, bytearray):
            payload = bytes(data)
        elif isinstance(data, bytes):
            payload = data
        else:
            continue
        if isinstance(candidate_mime, str) and candidate_mime.startswith("image/"):
            mime_type = candidate_mime
        image_bytes = payload

    return image_bytes, mime_type, "\n".join(texts).strip()


def upstream_status_code(exc: BaseException) -> int | None:
    """HTTP status carried by a GenAI SDK error, if any."""
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    status_text = getattr(exc, "status", None)
    if isinstance(status_text, str):
        return RETRYABLE_STATUS_TEXT.get(status_text.upper())
    return None


def is_retryable(exc: BaseException) -> bool:
    code = upstream_status_code(exc)
    return code is not None and (code == 429 or code >= 500)


def raise_upstream_error(exc: Exception, label: str, fallback: str) -> NoReturn:
    """Map a GenAI SDK failure onto the HTTP error the client sees."""
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, LLMOutputError):
        raise api_error(
            status.HTTP_502_BAD_GATEWAY,
            str(exc),
            {"reason": exc.reason},
        ) from exc
    code = upstream_status_code(exc)
    if code == 429:
        logger.warning("%s quota exceeded error=%s", label, exc)
        raise api_error(status.HTTP_429_TOO_MANY_REQUESTS, "Model quota exceeded", str(exc)) from exc
    if code is not None and 400 <= code < 500:
        logger.error("%s rejected by model status=%s error=%s", label, code, exc)
        raise api_error(
            status.HTTP_502_BAD_GATEWAY,
            fallback,
            {"upstreamStatus": code, "message": str(exc)},
        ) from exc
    logger.error("%s failed error=%s", label, exc)
    raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, fallback, str(exc)) from exc


async def generate_image_with_retry(
    client: Any,
    model: str,
    contents: list[Any],
    *,
    max_attempts: int,
    base_delay: float,
    label: str,
) -> Any:
    """Call the image model, retrying 429/5xx with a linear backoff."""
    content_config = build_image_content_config()
    max_attempts = max(1, max_attempts)
    for attempt in range(1, max_attempts + 1):
        try:
            return client.models.generate_content(
                model=model,
                contents=contents,
                config=content_config,
            )
        except Exception as exc:
            if attempt >= max_attempts or not is_retryable(exc):
                raise
            delay = attempt * base_delay
            logger.warning(
                "%s attempt %d/%d failed status=%s retryIn=%.1fs",
                label,
                attempt,
                max_attempts,
                upstream_status_code(exc),
                delay,
            )
            await asyncio.sleep(delay)
    raise RuntimeError(f"{label} made no attempts")


def generate_image(client: Any, model: str, contents: list[Any]) -> Any:
    return client.models.generate_content(
        model=model,
        contents=contents,
        config=build_image_content_config(),
    )
