from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class CreateProjectRequest(BaseModel):
    title: str | None = None


class UpdateProjectRequest(BaseModel):
    id: str | None = None
    title: str | None = None
    status: str | None = None
    story: str | None = None
    art_style: str | None = Field(default=None, validation_alias=AliasChoices("art_style", "artStyle"))
    steps: Any = Field(default=None, validation_alias=AliasChoices("steps", "step"))


class PublishRequest(BaseModel):
    projectId: str | None = None
