from __future__ import annotations

from webtoon_studio.parser import sanitize_prompt_text

EDIT_INSTRUCTION = (
    "Keep the existing image settings. Do not modify composition, character identity, or style. "
    "Apply ONLY the requested update to the given image."
)

REMOVE_BACKGROUND_INSTRUCTION = (
    "Remove the background from the given picture. Keep the subject intact and edges clean. "
    "Output on a plain white background."
)

SOUND_EFFECTS_INSTRUCTION = (
    "Add hand-lettered WEBTOON sound-effect onomatopoeia to the given panel. Place one to three "
    "bold, stylised sound effects near the action they belong to, matching the panel's line art and "
    "palette. Do not add speech bubbles, captions or any other text. Do not modify composition, "
    "character identity, or style."
)


def build_edit_prompt(instruction: str | None) -> str:
    update = sanitize_prompt_text(instruction)
    if not update:
        return EDIT_INSTRUCTION
    return f"{EDIT_INSTRUCTION}\nUpdate: {update}"


def build_sound_effects_prompt(story_text: str | None) -> str:
    context = sanitize_prompt_text(story_text)
    if not context:
        return SOUND_EFFECTS_INSTRUCTION
    return f"{SOUND_EFFECTS_INSTRUCTION}\nWhat happens in this panel: {context}"
