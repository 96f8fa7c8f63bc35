"""Pydantic models for snapshots and review requests."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from diffit.models.enums import FailureReason, ReviewAction, ReviewStatus, SnapshotStatus


class Snapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    snapshot_id: str
    build_id: str
    baseline_id: str | None = None
    name: str
    browser: str
    viewport: str
    width: int | None = None
    height: int | None = None
    base_image_key: str | None = None
    comparison_image_key: str | None = None
    diff_image_key: str | None = None
    diff_percentage: float
    diff_pixels: int
    status: SnapshotStatus
    failure_reason: FailureReason | None = None
    failure_message: str | None = None
    review_status: ReviewStatus
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: ReviewAction
    reviewed_by: str | None = Field(None, max_length=200)


class BatchReviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    snapshot_ids: list[str] = Field(..., min_length=1, max_length=500)
    action: ReviewAction
    reviewed_by: str | None = Field(None, max_length=200)


class ReviewResponse(BaseModel):
    snapshot: Snapshot
    baseline_id: str | None = None
    warnings: list[str] = Field(default_factory=list)


class BatchReviewFailure(BaseModel):
    snapshot_id: str
    code: str
    message: str


class BatchReviewResponse(BaseModel):
    updated: int
    failed: list[BatchReviewFailure] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
