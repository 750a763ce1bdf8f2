from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class SaveScenesRequest(BaseModel):
    projectId: str | None = None
    scenes: Any = None


class UpdateSceneRequest(BaseModel):
    projectId: str | None = None
    scene_no: int | None = Field(default=None, validation_alias=AliasChoices("scene_no", "sceneNo"))
    scene_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("scene_description", "sceneDescription"),
    )
    story_text: str | None = Field(default=None, validation_alias=AliasChoices("story_text", "storyText"))


class DeleteSceneRequest(BaseModel):
    projectId: str | None = None
    sceneNo: int | None = None


class SaveSceneImageRequest(BaseModel):
    imageDataUrl: str | None = None
    projectId: str | None = None
    sceneNo: int | None = Field(default=None, ge=1)
