"""Pydantic models for baselines."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Baseline(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    baseline_id: str
    project_id: str
    name: str
    branch: str
    browser: str
    viewport: str
    width: int
    height: int
    image_key: str
    source_snapshot_id: str | None = None
    version: int
    is_current: bool
    retired_at: datetime | None = None
    created_at: datetime | None = None


class PromoteSnapshotRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    snapshot_id: str = Field(..., min_length=1)
