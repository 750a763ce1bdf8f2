from __future__ import annotations

from pydantic import BaseModel, Field


class SceneTarget(BaseModel):
    """Optional project scene the result is saved to."""

    projectId: str | None = None
    sceneNo: int | None = Field(default=None, ge=1)


class EditImageRequest(SceneTarget):
    imageDataUrl: str | None = None
    instruction: str | None = None


class RemoveBackgroundRequest(SceneTarget):
    imageDataUrl: str | None = None


class SoundEffectsRequest(SceneTarget):
    imageDataUrl: str | None = None
    storyText: str | None = None
