"""Review state machine tests."""

import pytest

from diffit.errors.exceptions import ConflictError, NotFoundError, PromotionConflict
from diffit.models.enums import ReviewAction, ReviewStatus, SnapshotStatus
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services import baseline_resolver
from diffit.services.review import batch_review, review_snapshot
from diffit.services.snapshot_pipeline import PipelineOptions, submit_snapshot

from helpers import RED


async def changed_snapshot(session, store, build, make_png, name="home"):
    """A completed snapshot with a non-zero diff against an explicit base."""
    return await submit_snapshot(
        session,
        store,
        build.build_id,
        name,
        make_png(10, 10, block=(2, 2, 3, RED)),
        base_image=make_png(10, 10),
        options=PipelineOptions(),
    )


@pytest.mark.asyncio
async def test_approve_promotes_to_baseline(db_session, blob_store, build, make_png):
    snapshot = await changed_snapshot(db_session, blob_store, build, make_png)

    outcome = await review_snapshot(
        db_session, blob_store, snapshot.snapshot_id, ReviewAction.APPROVE, reviewed_by="ana"
    )

    assert outcome.snapshot.review_status == ReviewStatus.APPROVED
    assert outcome.snapshot.reviewed_by == "ana"
    assert outcome.snapshot.reviewed_at is not None
    assert outcome.warnings == []
    current = await baseline_resolver.resolve(db_session, build.project_id, "home", "main")
    assert current.baseline_id == outcome.baseline.baseline_id
    assert current.source_snapshot_id == snapshot.snapshot_id

    refreshed = await BuildRepository(db_session).get(build.build_id)
    assert refreshed.approved_snapshots == 1


@pytest.mark.asyncio
async def test_reject_then_approve_flips(db_session, blob_store, build, make_png):
    snapshot = await changed_snapshot(db_session, blob_store, build, make_png)

    rejected = await review_snapshot(db_session, blob_store, snapshot.snapshot_id, ReviewAction.REJECT)
    assert rejected.snapshot.review_status == ReviewStatus.REJECTED
    assert rejected.baseline is None

    approved = await review_snapshot(db_session, blob_store, snapshot.snapshot_id, ReviewAction.APPROVE)
    assert approved.snapshot.review_status == ReviewStatus.APPROVED


@pytest.mark.asyncio
async def test_reject_after_promotion_keeps_baseline(db_session, blob_store, build, make_png):
    snapshot = await changed_snapshot(db_session, blob_store, build, make_png)
    approved = await review_snapshot(db_session, blob_store, snapshot.snapshot_id, ReviewAction.APPROVE)

    await review_snapshot(db_session, blob_store, snapshot.snapshot_id, ReviewAction.REJECT)

    current = await baseline_resolver.resolve(db_session, build.project_id, "home", "main")
    assert current.baseline_id == approved.baseline.baseline_id


@pytest.mark.asyncio
async def test_zero_diff_snapshot_is_not_reviewable(db_session, blob_store, build, make_png):
    snapshot = await submit_snapshot(
        db_session, blob_store, build.build_id, "home", make_png(5, 5), options=PipelineOptions()
    )
    assert snapshot.diff_percentage == 0.0
    with pytest.raises(ConflictError):
        await review_snapshot(db_session, blob_store, snapshot.snapshot_id, ReviewAction.APPROVE)


@pytest.mark.asyncio
async def test_unknown_snapshot(db_session, blob_store):
    with pytest.raises(NotFoundError):
        await review_snapshot(db_session, blob_store, "snap_missing", ReviewAction.APPROVE)


@pytest.mark.asyncio
async def test_promotion_conflict_becomes_warning(db_session, blob_store, build, make_png):
    snapshot = await changed_snapshot(db_session, blob_store, build, make_png)
    key = baseline_resolver.tuple_key(build.project_id, "home", "main", "", "")

    async with baseline_resolver.promotion_locks.hold_nowait(key, PromotionConflict):
        outcome = await review_snapshot(
            db_session, blob_store, snapshot.snapshot_id, ReviewAction.APPROVE
        )

    assert outcome.baseline is None
    assert len(outcome.warnings) == 1
    stored = await SnapshotRepository(db_session).get(snapshot.snapshot_id)
    assert stored.review_status == ReviewStatus.APPROVED


@pytest.mark.asyncio
async def test_batch_review_counts_only_reviewable(db_session, blob_store, build, make_png):
    snapshot = await changed_snapshot(db_session, blob_store, build, make_png)
    await review_snapshot(db_session, blob_store, snapshot.snapshot_id, ReviewAction.APPROVE)

    pending = await SnapshotRepository(db_session).create(
        snapshot_id="snap_pending0001",
        build_id=build.build_id,
        name="checkout",
        status=SnapshotStatus.PENDING,
        review_status=ReviewStatus.UNREVIEWED,
    )
    await db_session.commit()

    result = await batch_review(
        db_session,
        blob_store,
        [snapshot.snapshot_id, pending.snapshot_id, "snap_missing"],
        ReviewAction.APPROVE,
        reviewed_by="ana",
    )

    assert result.updated == 1
    failed = {f.snapshot_id: f.code for f in result.failed}
    assert failed == {"snap_pending0001": "CONFLICT", "snap_missing": "NOT_FOUND"}
