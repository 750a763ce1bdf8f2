from __future__ import annotations

from pydantic import BaseModel


class ArtStyleRequest(BaseModel):
    projectId: str | None = None
    description: str | None = None
