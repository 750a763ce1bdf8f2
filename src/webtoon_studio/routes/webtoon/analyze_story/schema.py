from __future__ import annotations

from typing import List

from pydantic import BaseModel


class AnalyzeStoryRequest(BaseModel):
    story: str | None = None
    artStyle: str | None = None


class AnalyzedCharacter(BaseModel):
    id: str
    name: str
    description: str


class AnalyzeStoryResponse(BaseModel):
    success: bool = True
    characters: List[AnalyzedCharacter]
    story_title: str | None = None
