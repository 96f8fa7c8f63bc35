"""String enums for build, snapshot and review state."""

from enum import StrEnum


class BuildStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SnapshotStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReviewStatus(StrEnum):
    UNREVIEWED = "unreviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def review_status(self) -> ReviewStatus:
        if self is ReviewAction.APPROVE:
            return ReviewStatus.APPROVED
        return ReviewStatus.REJECTED


class FailureReason(StrEnum):
    DECODE_ERROR = "decode_error"
    DIMENSION_MISMATCH = "dimension_mismatch"
    STORAGE_ERROR = "storage_error"


class ImageKind(StrEnum):
    BASE = "base"
    COMPARISON = "comparison"
    DIFF = "diff"


class ZeroDiffPolicy(StrEnum):
    COUNT_AS_APPROVED = "count_as_approved"
    REQUIRE_REVIEW = "require_review"


TERMINAL_SNAPSHOT_STATUSES = (SnapshotStatus.COMPLETED, SnapshotStatus.FAILED)
FINALIZED_BUILD_STATUSES = (BuildStatus.COMPLETED, BuildStatus.FAILED)
