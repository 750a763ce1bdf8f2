from __future__ import annotations

from pydantic import BaseModel


class CharacterRequest(BaseModel):
    projectId: str | None = None
    name: str | None = None
    description: str | None = None
    artStyle: str | None = None
    imagePath: str | None = None
