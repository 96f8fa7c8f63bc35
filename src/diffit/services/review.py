"""Human review of changed snapshots.

Review status is independent of processing status and only applies to
completed snapshots that actually differ from their base. Approving also
promotes the snapshot to the current baseline; a failed promotion is
reported as a warning and never undoes the review.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.baseline import BaselineRow
from diffit.db.models.snapshot import SnapshotRow
from diffit.errors.exceptions import ConflictError, DiffitError, NotFoundError, PromotionConflict, StorageError
from diffit.models.enums import ReviewAction, SnapshotStatus
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services import baseline_resolver
from diffit.services.build_aggregator import refresh_build_counters
from diffit.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    snapshot: SnapshotRow
    baseline: BaselineRow | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class BatchFailure:
    snapshot_id: str
    code: str
    message: str


@dataclass
class BatchReviewResult:
    updated: int = 0
    failed: list[BatchFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def ensure_reviewable(snapshot: SnapshotRow) -> None:
    if snapshot.status != SnapshotStatus.COMPLETED:
        raise ConflictError(
            f"Snapshot '{snapshot.snapshot_id}' is {snapshot.status}; only completed snapshots can be reviewed",
            {"snapshot_id": snapshot.snapshot_id, "status": snapshot.status},
        )
    if snapshot.diff_percentage <= 0:
        raise ConflictError(
            f"Snapshot '{snapshot.snapshot_id}' has no visual changes to review",
            {"snapshot_id": snapshot.snapshot_id, "diff_percentage": snapshot.diff_percentage},
        )


async def review_snapshot(
    session: AsyncSession,
    store: BlobStore,
    snapshot_id: str,
    action: ReviewAction,
    reviewed_by: str | None = None,
) -> ReviewOutcome:
    snapshot = await SnapshotRepository(session).get(snapshot_id)
    if snapshot is None:
        raise NotFoundError("Snapshot", snapshot_id)
    ensure_reviewable(snapshot)

    action = ReviewAction(action)
    snapshot.review_status = action.review_status
    snapshot.reviewed_by = reviewed_by
    snapshot.reviewed_at = datetime.now(timezone.utc)
    await session.commit()
    logger.info(
        "snapshot_reviewed",
        extra={"snapshot_id": snapshot_id, "action": action, "reviewed_by": reviewed_by},
    )
    await refresh_build_counters(session, snapshot.build_id)

    outcome = ReviewOutcome(snapshot=snapshot)
    if action is ReviewAction.APPROVE:
        try:
            outcome.baseline = await baseline_resolver.promote(session, store, snapshot)
        except (PromotionConflict, StorageError) as exc:
            logger.warning(
                "snapshot_promotion_skipped",
                extra={"snapshot_id": snapshot_id, "code": exc.code, "reason": exc.message},
            )
            outcome.warnings.append(f"{snapshot_id}: {exc.message}")
            await session.refresh(snapshot)
    return outcome


async def batch_review(
    session: AsyncSession,
    store: BlobStore,
    snapshot_ids: list[str],
    action: ReviewAction,
    reviewed_by: str | None = None,
) -> BatchReviewResult:
    """Review each snapshot independently; one bad id never blocks the rest."""
    result = BatchReviewResult()
    for snapshot_id in dict.fromkeys(snapshot_ids):
        try:
            outcome = await review_snapshot(session, store, snapshot_id, action, reviewed_by)
        except DiffitError as exc:
            result.failed.append(BatchFailure(snapshot_id=snapshot_id, code=exc.code, message=exc.message))
            continue
        result.updated += 1
        result.warnings.extend(outcome.warnings)

    logger.info(
        "batch_review_completed",
        extra={"action": action, "updated": result.updated, "failed": len(result.failed)},
    )
    return result
