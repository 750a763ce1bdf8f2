from __future__ import annotations

from webtoon_studio.parser import sanitize_ascii

MAX_CHARACTERS = 6

SYSTEM_PROMPT = (
    "You analyze stories and produce a compact WEBTOON character bible with a single, consistent "
    "art direction. Read carefully, infer missing specifics, and return JSON only that follows the "
    "schema. Keep outputs concise, visual, and production-ready."
)

USER_PROMPT_TEMPLATE = """SOURCE STORY (full text):
{story}

PREFERRED ART STYLE: {art_style}

TASK
Create a unified WEBTOON character bible. First, infer a single shared art style from the story's genre, tone, era and culture. Then list up to {max_characters} distinct living entities that appear or are explicitly mentioned as individuals (humans, humanoids, creatures, spirits, animals). Merge aliases and titles into one identity. If unnamed, assign "Entity 1", "Entity 2", ... by narrative importance. Choose specific plausible values; never use placeholders.

For each character, provide stable visual anchors and wardrobe baselines so future generations match. Keep each description around 120-160 words and cover: role, age band and build, head and face, hair or fur, 1-2 identity marks, wardrobe baseline, a palette of 3-5 hex codes, signature props, pose and vibe.

OUTPUT FORMAT (JSON ONLY)
{{
  "story_title": string,
  "style_bible": {{
    "art_style_summary": string,
    "consistency_tokens": [string],
    "canonical_prompt_prefix": string
  }},
  "total_characters": number,
  "characters": [
    {{
      "id": "c1",
      "name": string,
      "role": string,
      "gender": "male" | "female",
      "Character_Description": string
    }}
  ]
}}

CONSTRAINTS
- Return JSON only. No markdown, comments or extra keys.
- Limit to at most {max_characters} characters, ranked by story importance."""


def build_prompt(story: str, art_style: str | None) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` with ASCII-only text."""
    user_prompt = USER_PROMPT_TEMPLATE.format(
        story=sanitize_ascii(story),
        art_style=sanitize_ascii(art_style or "webtoon"),
        max_characters=MAX_CHARACTERS,
    )
    return sanitize_ascii(SYSTEM_PROMPT), user_prompt
