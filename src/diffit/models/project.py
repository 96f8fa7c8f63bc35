"""Pydantic models for the Project entity."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

SLUG_PATTERN = r"^[a-z0-9][a-z0-9-]*$"


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=100, pattern=SLUG_PATTERN)
    default_branch: str = Field("main", min_length=1, max_length=255)
    repository_url: str | None = Field(None, max_length=500)


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1, max_length=200)
    slug: str | None = Field(None, min_length=1, max_length=100, pattern=SLUG_PATTERN)
    default_branch: str | None = Field(None, min_length=1, max_length=255)
    repository_url: str | None = Field(None, max_length=500)


class Project(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_id: str
    slug: str
    name: str
    default_branch: str
    repository_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
