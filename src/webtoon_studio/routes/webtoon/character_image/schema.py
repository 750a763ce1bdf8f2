from __future__ import annotations

from pydantic import BaseModel


class CharacterImageRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    artStyle: str | None = None
    projectId: str | None = None


class ImageResponse(BaseModel):
    success: bool = True
    image: str
    path: str | None = None
