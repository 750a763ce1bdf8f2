from __future__ import annotations

from typing import List, Union

from pydantic import BaseModel, Field

from ..character_image.schema import ImageResponse


class CharacterReference(BaseModel):
    name: str | None = None
    dataUrl: str | None = None


class SceneImageRequest(BaseModel):
    sceneDescription: str | None = None
    storyText: str | None = None
    characterImages: List[Union[CharacterReference, str]] | None = None
    artStyle: str | None = None
    projectId: str | None = None
    sceneNo: int | None = Field(default=None, ge=1)
    addSoundEffects: bool = True

    def reference_urls(self) -> list[str]:
        urls: list[str] = []
        for entry in self.characterImages or []:
            value = entry if isinstance(entry, str) else entry.dataUrl
            if value:
                urls.append(value)
        return urls


class SceneImageResponse(ImageResponse):
    effectsApplied: bool = False
