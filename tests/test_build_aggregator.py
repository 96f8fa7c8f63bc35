"""Build counter recomputation and finalization tests."""

import asyncio

import pytest

from diffit.errors.exceptions import NotFoundError, NotReady
from diffit.models.enums import BuildStatus, ReviewStatus, SnapshotStatus, ZeroDiffPolicy
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services.build_aggregator import finalize_build, refresh_build_counters
from diffit.services.id_generator import SNAPSHOT_PREFIX, generate_id

from helpers import new_build


async def add_snapshot(
    session, build_id, status=SnapshotStatus.COMPLETED, diff=0.0, review=ReviewStatus.UNREVIEWED, name=None, **kwargs
):
    row = await SnapshotRepository(session).create(
        snapshot_id=generate_id(SNAPSHOT_PREFIX),
        build_id=build_id,
        name=name or generate_id("page-"),
        status=status,
        diff_percentage=diff,
        review_status=review,
        **kwargs,
    )
    await session.commit()
    return row


@pytest.fixture
async def mixed_build(db_session, build):
    bid = build.build_id
    await add_snapshot(db_session, bid)  # new: no baseline, zero diff
    await add_snapshot(db_session, bid, baseline_id="bsl_a")  # unchanged
    await add_snapshot(db_session, bid, diff=2.5, baseline_id="bsl_b")  # changed, unreviewed
    await add_snapshot(db_session, bid, diff=0.3, baseline_id="bsl_c", review=ReviewStatus.APPROVED)
    await add_snapshot(db_session, bid, diff=1.0, baseline_id="bsl_d", review=ReviewStatus.REJECTED)
    await add_snapshot(db_session, bid, status=SnapshotStatus.FAILED, failure_reason="decode_error")
    return build


@pytest.mark.asyncio
async def test_counters_recomputed_from_snapshots(db_session, mixed_build):
    build = await refresh_build_counters(db_session, mixed_build.build_id, ZeroDiffPolicy.COUNT_AS_APPROVED)
    assert build.total_snapshots == 6
    assert build.changed_snapshots == 3
    assert build.approved_snapshots == 3
    assert build.failed_snapshots == 1
    assert build.new_snapshots == 1


@pytest.mark.asyncio
async def test_require_review_policy_excludes_zero_diff(db_session, mixed_build):
    build = await refresh_build_counters(db_session, mixed_build.build_id, ZeroDiffPolicy.REQUIRE_REVIEW)
    assert build.approved_snapshots == 1


@pytest.mark.asyncio
async def test_refresh_missing_build_returns_none(db_session):
    assert await refresh_build_counters(db_session, "bld_missing") is None


@pytest.mark.asyncio
async def test_concurrent_refreshes_do_not_drift(session_factory, db_session, build):
    for i in range(8):
        await add_snapshot(db_session, build.build_id, diff=float(i), baseline_id=f"bsl_{i}")

    async def refresh():
        async with session_factory() as session:
            return await refresh_build_counters(session, build.build_id)

    await asyncio.gather(*(refresh() for _ in range(5)))

    fresh = await refresh_build_counters(db_session, build.build_id)
    assert fresh.total_snapshots == 8
    assert fresh.changed_snapshots == 7


class TestFinalize:
    @pytest.mark.asyncio
    async def test_not_ready_while_processing(self, db_session, build):
        await add_snapshot(db_session, build.build_id, status=SnapshotStatus.PROCESSING)
        with pytest.raises(NotReady) as exc_info:
            await finalize_build(db_session, build.build_id)
        assert exc_info.value.status_code == 409
        row = await BuildRepository(db_session).get(build.build_id)
        assert row.status == BuildStatus.PENDING

    @pytest.mark.asyncio
    async def test_completed_when_all_succeeded(self, db_session, build):
        await add_snapshot(db_session, build.build_id, diff=4.0, baseline_id="bsl_x")
        finalized = await finalize_build(db_session, build.build_id)
        assert finalized.status == BuildStatus.COMPLETED
        assert finalized.finished_at is not None

    @pytest.mark.asyncio
    async def test_failed_when_any_snapshot_failed(self, db_session, build):
        await add_snapshot(db_session, build.build_id)
        await add_snapshot(db_session, build.build_id, status=SnapshotStatus.FAILED)
        finalized = await finalize_build(db_session, build.build_id)
        assert finalized.status == BuildStatus.FAILED

    @pytest.mark.asyncio
    async def test_finalize_is_idempotent(self, db_session, build):
        first = await finalize_build(db_session, build.build_id)
        finished_at = first.finished_at
        again = await finalize_build(db_session, build.build_id)
        assert again.status == BuildStatus.COMPLETED
        assert again.finished_at == finished_at

    @pytest.mark.asyncio
    async def test_unknown_build(self, db_session):
        with pytest.raises(NotFoundError):
            await finalize_build(db_session, "bld_missing")

    @pytest.mark.asyncio
    async def test_auto_finalize_at_expected_count(self, db_session, project):
        build = await new_build(db_session, project.project_id, expected_snapshots=2)
        await add_snapshot(db_session, build.build_id)
        partial = await refresh_build_counters(db_session, build.build_id)
        assert partial.status == BuildStatus.PENDING

        await add_snapshot(db_session, build.build_id)
        done = await refresh_build_counters(db_session, build.build_id)
        assert done.status == BuildStatus.COMPLETED
        assert done.finished_at is not None
