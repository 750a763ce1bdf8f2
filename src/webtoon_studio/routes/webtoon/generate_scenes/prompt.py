from __future__ import annotations

from webtoon_studio.parser import sanitize_prompt_text

MIN_SCENES = 6
MAX_SCENES = 24

SYSTEM_PROMPT = (
    "You are a professional WEBTOON storyboard artist and beat editor. Your job: split a narrative "
    "into ATOMIC, vertical-reading panels (one beat per scene) optimized for later image generation. "
    "Never merge multiple actions into one scene. Output STRICT JSON only (no prose, no markdown)."
)

USER_PROMPT_TEMPLATE = """SOURCE STORY (full text):
{story}

OBJECTIVE
- Convert the story into a sequence of ATOMIC scenes (webtoon panels).
- Each scene is exactly ONE visual beat: an action, a reaction or a decisive emotion shift.

SCENE SPLITTING RULES
1) One beat per scene. If A acts and B reacts, that is two scenes.
2) Split on changes in location, time, goal, focal subject or emotional state.
3) Keep {min_scenes}-{max_scenes} scenes. Prefer more simple beats over fewer overloaded ones.
4) Keep names, roles and props consistent across scenes.

FIELD DEFINITIONS
- Story_Text: 1-2 sentences, 25-55 words, present tense, third person. A concrete, drawable description of what happens in this scene: who, the single key action, the target, a setting cue and visible emotion. No internal thoughts.
- Scene_Description: 1-2 sentences for the illustrator with shot type (WS/MS/CU/ECU/OTS), angle, lighting and mood, composition, pose and expression, essential environment. Vertical framing, no direct-to-camera gaze, no text overlays.

OUTPUT FORMAT (JSON ONLY):
{{
  "story_title": "",
  "total_scenes": <INT>,
  "scenes": {{
    "scene_1": {{ "Story_Text": "", "Scene_Description": "" }},
    "scene_2": {{ "Story_Text": "", "Scene_Description": "" }}
  }}
}}

total_scenes must equal the number of entries in "scenes"."""


def build_prompt(story: str) -> tuple[str, str]:
    user_prompt = USER_PROMPT_TEMPLATE.format(
        story=sanitize_prompt_text(story),
        min_scenes=MIN_SCENES,
        max_scenes=MAX_SCENES,
    )
    return sanitize_prompt_text(SYSTEM_PROMPT), user_prompt
