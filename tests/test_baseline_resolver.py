"""Baseline resolution, promotion and deletion tests."""

import asyncio

import pytest
from sqlalchemy import select

from diffit.db.models.baseline import BaselinePointerRow, BaselineRow
from diffit.errors.exceptions import ConflictError, NoBaseline, PromotionConflict
from diffit.models.enums import ImageKind, ReviewStatus, SnapshotStatus
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services import baseline_resolver
from diffit.services.id_generator import SNAPSHOT_PREFIX, generate_id
from diffit.storage.blob_store import snapshot_key

from helpers import RED, new_build, png_bytes, solid


async def install(session, store, project_id, name="home", branch="main", color=RED):
    return await baseline_resolver.install_baseline(
        session,
        store,
        project_id=project_id,
        name=name,
        branch=branch,
        browser="",
        viewport="",
        width=8,
        height=8,
        image=png_bytes(solid(8, 8, color)),
    )


async def approved_snapshot(session, store, build, name="home"):
    snapshot_id = generate_id(SNAPSHOT_PREFIX)
    key = await store.put(snapshot_key(snapshot_id, ImageKind.COMPARISON), png_bytes(solid(8, 8)))
    row = await SnapshotRepository(session).create(
        snapshot_id=snapshot_id,
        build_id=build.build_id,
        name=name,
        browser="",
        viewport="",
        width=8,
        height=8,
        comparison_image_key=key,
        diff_percentage=12.5,
        diff_pixels=8,
        status=SnapshotStatus.COMPLETED,
        review_status=ReviewStatus.APPROVED,
    )
    await session.commit()
    return row


async def current_baselines(session, project_id, name="home"):
    result = await session.execute(
        select(BaselineRow).where(
            BaselineRow.project_id == project_id,
            BaselineRow.name == name,
            BaselineRow.is_current.is_(True),
        )
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_resolve_without_baseline_raises(db_session, project):
    with pytest.raises(NoBaseline) as exc_info:
        await baseline_resolver.resolve(db_session, project.project_id, "home", "main")
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_install_then_resolve(db_session, blob_store, project):
    baseline = await install(db_session, blob_store, project.project_id)
    assert baseline.baseline_id.startswith("bsl_")
    assert baseline.version == 1
    assert baseline.is_current
    assert await blob_store.exists(baseline.image_key)

    resolved = await baseline_resolver.resolve(db_session, project.project_id, "home", "main")
    assert resolved.baseline_id == baseline.baseline_id


@pytest.mark.asyncio
async def test_second_install_retires_previous(db_session, blob_store, project):
    first = await install(db_session, blob_store, project.project_id)
    second = await install(db_session, blob_store, project.project_id)

    await db_session.refresh(first)
    assert second.version == 2
    assert first.is_current is False
    assert first.retired_at is not None
    current = await current_baselines(db_session, project.project_id)
    assert [b.baseline_id for b in current] == [second.baseline_id]


@pytest.mark.asyncio
async def test_resolve_falls_back_to_default_branch(db_session, blob_store, project):
    main_baseline = await install(db_session, blob_store, project.project_id, branch="main")

    resolved = await baseline_resolver.resolve(
        db_session, project.project_id, "home", "feature/login", fallback_branch="main"
    )
    assert resolved.baseline_id == main_baseline.baseline_id

    with pytest.raises(NoBaseline):
        await baseline_resolver.resolve(db_session, project.project_id, "home", "feature/login")


@pytest.mark.asyncio
async def test_tuples_are_isolated_by_browser(db_session, blob_store, project):
    await install(db_session, blob_store, project.project_id)
    with pytest.raises(NoBaseline):
        await baseline_resolver.resolve(
            db_session, project.project_id, "home", "main", browser="firefox"
        )


@pytest.mark.asyncio
async def test_promote_requires_approval(db_session, blob_store, project):
    build = await new_build(db_session, project.project_id)
    snapshot = await approved_snapshot(db_session, blob_store, build)
    snapshot.review_status = ReviewStatus.REJECTED
    await db_session.commit()

    with pytest.raises(ConflictError):
        await baseline_resolver.promote(db_session, blob_store, snapshot)


@pytest.mark.asyncio
async def test_promote_copies_comparison_image(db_session, blob_store, project):
    build = await new_build(db_session, project.project_id)
    snapshot = await approved_snapshot(db_session, blob_store, build)

    baseline = await baseline_resolver.promote(db_session, blob_store, snapshot)
    assert baseline.source_snapshot_id == snapshot.snapshot_id
    assert await blob_store.get(baseline.image_key) == await blob_store.get(snapshot.comparison_image_key)

    again = await baseline_resolver.promote(db_session, blob_store, snapshot)
    assert again.baseline_id == baseline.baseline_id


@pytest.mark.asyncio
async def test_concurrent_promotions_leave_one_current(session_factory, db_session, blob_store, project):
    build = await new_build(db_session, project.project_id)
    first = await approved_snapshot(db_session, blob_store, build)
    second = await approved_snapshot(db_session, blob_store, build)

    async def promote(snapshot_id):
        async with session_factory() as session:
            snapshot = await SnapshotRepository(session).get(snapshot_id)
            return await baseline_resolver.promote(session, blob_store, snapshot)

    results = await asyncio.gather(
        promote(first.snapshot_id), promote(second.snapshot_id), return_exceptions=True
    )
    successes = [r for r in results if isinstance(r, BaselineRow)]
    conflicts = [r for r in results if isinstance(r, PromotionConflict)]
    assert successes
    assert len(successes) + len(conflicts) == 2

    current = await current_baselines(db_session, project.project_id)
    assert len(current) == 1
    pointer = (await db_session.execute(select(BaselinePointerRow))).scalar_one()
    assert pointer.current_baseline_id == current[0].baseline_id


@pytest.mark.asyncio
async def test_install_conflicts_while_tuple_locked(db_session, blob_store, project):
    key = baseline_resolver.tuple_key(project.project_id, "home", "main", "", "")
    async with baseline_resolver.promotion_locks.hold_nowait(key, PromotionConflict):
        with pytest.raises(PromotionConflict):
            await install(db_session, blob_store, project.project_id)
    assert await current_baselines(db_session, project.project_id) == []


@pytest.mark.asyncio
async def test_deleting_current_baseline_clears_pointer(db_session, blob_store, project):
    baseline = await install(db_session, blob_store, project.project_id)
    image_key = baseline.image_key

    await baseline_resolver.delete_baseline(db_session, blob_store, baseline)

    assert not await blob_store.exists(image_key)
    with pytest.raises(NoBaseline):
        await baseline_resolver.resolve(db_session, project.project_id, "home", "main")
    replacement = await install(db_session, blob_store, project.project_id)
    assert replacement.is_current
