from __future__ import annotations

from typing import Dict

from pydantic import BaseModel


class SceneText(BaseModel):
    Story_Text: str
    Scene_Description: str


class GenerateScenesRequest(BaseModel):
    story: str | None = None


class GenerateScenesResponse(BaseModel):
    success: bool = True
    scenes: Dict[str, SceneText]
    story_title: str | None = None
    total_scenes: int
