from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel

from ..generate_scenes.schema import SceneText


class InsertSceneRequest(BaseModel):
    scenes: List[Any] | None = None
    insertAfterIndex: int | None = None


class InsertSceneResponse(BaseModel):
    success: bool = True
    scene: SceneText
