from __future__ import annotations

from webtoon_studio.parser import sanitize_prompt_text

PANEL_INSTRUCTION = (
    "You are generating a single WEBTOON panel for a vertical-scroll comic.\n"
    "Keep the SAME PERSON as in provided references. Do NOT change hair length/color or fringe shape. "
    "Keep the same eye spacing, brow thickness, jawline, and any unique marks.\n"
    "Style: clean webtoon line art, flat cel shading, high mobile readability. DO NOT INCLUDE TEXT."
)


def build_prompt(
    scene_description: str,
    story_text: str,
    art_style: str | None,
    reference_count: int,
) -> str:
    lines = [PANEL_INSTRUCTION, ""]
    if art_style and art_style.strip():
        lines.append(f"Art style: {art_style}")
    if reference_count:
        lines.append(f"Character reference images attached: {reference_count}")
    lines.append(f"Scene Description: {scene_description}")
    lines.append(f"Story Text: {story_text}")
    return sanitize_prompt_text("\n".join(lines))
