"""Pydantic models for the Build entity."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from diffit.models.enums import BuildStatus


class BuildCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: str = Field(..., min_length=1)
    branch: str = Field(..., min_length=1, max_length=255)
    commit_sha: str | None = Field(None, max_length=64)
    commit_message: str | None = None
    pull_request_number: int | None = Field(None, ge=1)
    expected_snapshots: int | None = Field(None, ge=1)


class Build(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    build_id: str
    project_id: str
    build_number: int
    branch: str
    commit_sha: str | None = None
    commit_message: str | None = None
    pull_request_number: int | None = None
    expected_snapshots: int | None = None
    total_snapshots: int
    changed_snapshots: int
    approved_snapshots: int
    failed_snapshots: int
    new_snapshots: int
    status: BuildStatus
    finished_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
