from __future__ import annotations

from webtoon_studio.parser import sanitize_prompt_text

CHARACTER_SHEET_INSTRUCTION = (
    "You are generating a consistent WEBTOON character model sheet for production. Render a single, "
    "front-facing character with clean line art and flat colors, maintaining stable identity markers "
    "so the character remains consistent across scenes. Avoid multiple characters, busy backgrounds, "
    "watermarks, or text."
)

ART_STYLE_SHEET_INSTRUCTION = (
    "You are generating a consistent character model sheet for production. Render a single, "
    "front-facing character with expressive face, studio sheet white background."
)

DEFAULT_STYLE = (
    "webtoon, clean outlines, expressive face, readable silhouette, studio sheet white background"
)


def build_prompt(name: str | None, description: str, art_style: str | None, *, follow_art_style: bool) -> str:
    """Character sheet prompt; ``follow_art_style`` switches to the project's own style text."""
    instruction = ART_STYLE_SHEET_INSTRUCTION if follow_art_style else CHARACTER_SHEET_INSTRUCTION
    style = DEFAULT_STYLE
    if art_style and art_style.strip():
        style = art_style if follow_art_style else f"{art_style}, {DEFAULT_STYLE}"
    prompt = (
        f"{instruction}\n\n"
        f"Character name: {name or 'Unnamed'}.\n"
        f"Character description: {description}.\n"
        f"Desired style: {style}."
    )
    return sanitize_prompt_text(prompt)
