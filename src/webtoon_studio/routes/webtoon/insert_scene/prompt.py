from __future__ import annotations

import json
from typing import Any

from webtoon_studio.parser import sanitize_prompt_text

SYSTEM_PROMPT = (
    "You are a professional storyboard artist. Insert ONE new scene between two existing scenes "
    "so the flow is smooth. Return JSON ONLY."
)


def build_prompt(scenes: list[Any], insert_after_index: int) -> tuple[str, str]:
    scenes_json = json.dumps(scenes, ensure_ascii=False)
    position = (
        "at the very beginning, before scene_1"
        if insert_after_index < 0
        else f"after scene_{insert_after_index + 1}"
    )
    user_prompt = (
        f"CURRENT SCENES (ordered JSON):\n{scenes_json}\n\n"
        f"INSERT AFTER INDEX (0-based): {insert_after_index}\n\n"
        "REQUIREMENTS:\n"
        f"- Create exactly one new scene that fits logically {position}.\n"
        "- Preserve continuity (characters, location, time).\n"
        "- Keep Story_Text (1-2 sentences) and Scene_Description (2-4 sentences focused on visuals "
        "for image generation).\n\n"
        'OUTPUT JSON ONLY:\n{ "scene": { "Story_Text": "", "Scene_Description": "" } }'
    )
    return SYSTEM_PROMPT, sanitize_prompt_text(user_prompt)
