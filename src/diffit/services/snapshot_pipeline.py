"""Snapshot lifecycle: pending -> processing -> completed | failed.

Each submission stores the comparison image, resolves a base image (an
explicit upload, the current baseline, or none at all for the first
snapshot of a tuple), runs the pixel diff in a worker thread and records
the outcome. Every terminal state is followed by a build counter refresh.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import NoReturn

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from diffit.config import settings
from diffit.db.models.build import BuildRow
from diffit.db.models.snapshot import SnapshotRow
from diffit.errors.exceptions import (
    ConflictError,
    DecodeError,
    DimensionMismatch,
    NoBaseline,
    NotFoundError,
    PromotionConflict,
    StorageError,
    ValidationError,
)
from diffit.imaging import codec
from diffit.imaging.diff_engine import DiffOptions, compare
from diffit.models.enums import (
    FINALIZED_BUILD_STATUSES,
    TERMINAL_SNAPSHOT_STATUSES,
    BuildStatus,
    FailureReason,
    ImageKind,
    ReviewStatus,
    SnapshotStatus,
)
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.project_repo import ProjectRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services import baseline_resolver
from diffit.services.build_aggregator import refresh_build_counters
from diffit.services.id_generator import SNAPSHOT_PREFIX, generate_id
from diffit.services.locks import build_locks
from diffit.storage.blob_store import BlobStore, snapshot_key, snapshot_prefix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    diff: DiffOptions = field(default_factory=DiffOptions)
    dimension_mismatch_fails: bool = True
    branch_fallback: bool = True

    @classmethod
    def from_settings(cls) -> "PipelineOptions":
        return cls(
            diff=DiffOptions(
                threshold=settings.diff_threshold,
                antialiasing=settings.diff_antialiasing,
                precision=settings.diff_precision,
            ),
            dimension_mismatch_fails=settings.dimension_mismatch_fails,
            branch_fallback=settings.baseline_branch_fallback,
        )


_RESET_FIELDS = {
    "baseline_id": None,
    "base_image_key": None,
    "diff_image_key": None,
    "diff_percentage": 0.0,
    "diff_pixels": 0,
    "review_status": ReviewStatus.UNREVIEWED,
    "reviewed_by": None,
    "reviewed_at": None,
}


def _attach_snapshot_id(exc, snapshot_id: str):
    if isinstance(exc.details, dict):
        exc.details = {**exc.details, "snapshot_id": snapshot_id}
    else:
        exc.details = {"snapshot_id": snapshot_id}
    return exc


async def _refetch(session: AsyncSession, snapshot_id: str) -> SnapshotRow | None:
    stmt = (
        select(SnapshotRow)
        .where(SnapshotRow.snapshot_id == snapshot_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def _apply(session: AsyncSession, snapshot_id: str, **fields) -> SnapshotRow | None:
    """Write fields to a snapshot that may have been deleted concurrently.

    Returns ``None`` (and writes nothing) when the snapshot is gone.
    """
    snapshot = await _refetch(session, snapshot_id)
    if snapshot is None:
        logger.info("snapshot_result_discarded", extra={"snapshot_id": snapshot_id})
        return None
    for key, value in fields.items():
        setattr(snapshot, key, value)
    try:
        await session.commit()
    except StaleDataError:
        await session.rollback()
        logger.info("snapshot_result_discarded", extra={"snapshot_id": snapshot_id})
        return None
    return snapshot


async def _fail(
    session: AsyncSession, snapshot_id: str, reason: FailureReason, message: str, **fields
) -> SnapshotRow | None:
    logger.warning(
        "snapshot_failed",
        extra={"snapshot_id": snapshot_id, "failure_reason": reason, "reason": message},
    )
    return await _apply(
        session,
        snapshot_id,
        status=SnapshotStatus.FAILED,
        failure_reason=reason,
        failure_message=message,
        **fields,
    )


async def _decode(data: bytes) -> codec.PixelBuffer:
    return await asyncio.to_thread(codec.decode, data)


async def _discard(session: AsyncSession, store: BlobStore, snapshot_id: str, build_id: str) -> NoReturn:
    """The snapshot was deleted mid-flight: drop whatever blobs this run wrote."""
    await store.delete_prefix(snapshot_prefix(snapshot_id))
    logger.info("snapshot_blobs_discarded", extra={"snapshot_id": snapshot_id, "build_id": build_id})
    await refresh_build_counters(session, build_id)
    raise NotFoundError("Snapshot", snapshot_id)


async def submit_snapshot(
    session: AsyncSession,
    store: BlobStore,
    build_id: str,
    name: str,
    image: bytes,
    browser: str | None = None,
    viewport: str | None = None,
    base_image: bytes | None = None,
    options: PipelineOptions | None = None,
) -> SnapshotRow:
    """Attach a new snapshot to a build and diff it.

    Raises:
        NotFoundError: unknown build, or the build was deleted mid-flight.
        ConflictError: the build is already finalized.
        DecodeError, StorageError: recorded on the snapshot, then re-raised
            with ``snapshot_id`` in ``details``.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Snapshot name is required")

    snapshot_id = generate_id(SNAPSHOT_PREFIX)
    async with build_locks.hold(build_id):
        build = await BuildRepository(session).get_fresh(build_id)
        if build is None:
            raise NotFoundError("Build", build_id)
        if build.status in FINALIZED_BUILD_STATUSES:
            raise ConflictError(f"Build '{build_id}' is {build.status} and accepts no new snapshots")

        await SnapshotRepository(session).create(
            snapshot_id=snapshot_id,
            build_id=build_id,
            name=name,
            browser=browser or "",
            viewport=viewport or "",
            status=SnapshotStatus.PENDING,
            review_status=ReviewStatus.UNREVIEWED,
        )
        if build.status == BuildStatus.PENDING:
            build.status = BuildStatus.PROCESSING
        await session.commit()
    logger.info(
        "snapshot_submitted",
        extra={"snapshot_id": snapshot_id, "build_id": build_id, "snapshot_name": name},
    )

    try:
        comparison_key = await store.put(snapshot_key(snapshot_id, ImageKind.COMPARISON), image)
    except StorageError as exc:
        if await _refetch(session, snapshot_id) is None:
            await _discard(session, store, snapshot_id, build_id)
        await _fail(session, snapshot_id, FailureReason.STORAGE_ERROR, exc.message)
        await refresh_build_counters(session, build_id)
        raise _attach_snapshot_id(exc, snapshot_id)

    if await _apply(session, snapshot_id, comparison_image_key=comparison_key) is None:
        await _discard(session, store, snapshot_id, build_id)
    await refresh_build_counters(session, build_id)
    return await process_snapshot(session, store, snapshot_id, base_image=base_image, options=options)


async def resubmit_snapshot(
    session: AsyncSession,
    store: BlobStore,
    snapshot_id: str,
    image: bytes | None = None,
    base_image: bytes | None = None,
    options: PipelineOptions | None = None,
) -> SnapshotRow:
    """Re-run a terminal snapshot, optionally with a new comparison image.

    Diff results and review state are reset; the build must not be finalized.
    """
    snapshot = await SnapshotRepository(session).get(snapshot_id)
    if snapshot is None:
        raise NotFoundError("Snapshot", snapshot_id)
    build_id = snapshot.build_id

    async with build_locks.hold(build_id):
        build = await BuildRepository(session).get_fresh(build_id)
        snapshot = await _refetch(session, snapshot_id)
        if build is None or snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)
        if build.status in FINALIZED_BUILD_STATUSES:
            raise ConflictError(f"Build '{build_id}' is {build.status}; snapshots can no longer change")
        if snapshot.status not in TERMINAL_SNAPSHOT_STATUSES:
            raise ConflictError(f"Snapshot '{snapshot_id}' is {snapshot.status} and cannot be resubmitted")
        if image is None and not snapshot.comparison_image_key:
            raise ValidationError("Snapshot has no stored comparison image; an image upload is required")

        stale_keys = [key for key in (snapshot.base_image_key, snapshot.diff_image_key) if key]
        comparison_key = snapshot.comparison_image_key
        if await _apply(
            session,
            snapshot_id,
            status=SnapshotStatus.PENDING,
            failure_reason=None,
            failure_message=None,
            **_RESET_FIELDS,
        ) is None:
            raise NotFoundError("Snapshot", snapshot_id)

    for key in stale_keys:
        await store.delete(key)

    if image is not None:
        try:
            comparison_key = await store.put(snapshot_key(snapshot_id, ImageKind.COMPARISON), image)
        except StorageError as exc:
            if await _refetch(session, snapshot_id) is None:
                await _discard(session, store, snapshot_id, build_id)
            await _fail(session, snapshot_id, FailureReason.STORAGE_ERROR, exc.message)
            await refresh_build_counters(session, build_id)
            raise _attach_snapshot_id(exc, snapshot_id)
        if await _apply(session, snapshot_id, comparison_image_key=comparison_key) is None:
            await _discard(session, store, snapshot_id, build_id)

    logger.info("snapshot_resubmitted", extra={"snapshot_id": snapshot_id, "build_id": build_id})
    await refresh_build_counters(session, build_id)
    return await process_snapshot(session, store, snapshot_id, base_image=base_image, options=options)


async def process_snapshot(
    session: AsyncSession,
    store: BlobStore,
    snapshot_id: str,
    base_image: bytes | None = None,
    options: PipelineOptions | None = None,
) -> SnapshotRow:
    """Drive a pending snapshot to a terminal state.

    If the snapshot (or its build) is deleted while the diff runs, the
    result and any blobs written for it are discarded and ``NotFoundError``
    is raised.
    """
    options = options or PipelineOptions.from_settings()
    snapshot = await SnapshotRepository(session).get(snapshot_id)
    if snapshot is None:
        raise NotFoundError("Snapshot", snapshot_id)
    if snapshot.status != SnapshotStatus.PENDING:
        raise ConflictError(f"Snapshot '{snapshot_id}' is {snapshot.status}, expected pending")
    build_id = snapshot.build_id

    snapshot = await _apply(session, snapshot_id, status=SnapshotStatus.PROCESSING)
    if snapshot is None:
        await _discard(session, store, snapshot_id, build_id)

    try:
        result = await _run(session, store, snapshot, base_image, options)
    except (DecodeError, StorageError) as exc:
        if await _refetch(session, snapshot_id) is None:
            await _discard(session, store, snapshot_id, build_id)
        reason = (
            FailureReason.DECODE_ERROR if isinstance(exc, DecodeError) else FailureReason.STORAGE_ERROR
        )
        await _fail(session, snapshot_id, reason, exc.message)
        await refresh_build_counters(session, build_id)
        raise _attach_snapshot_id(exc, snapshot_id)

    if result is None:
        await _discard(session, store, snapshot_id, build_id)
    await refresh_build_counters(session, build_id)
    return result


async def _run(
    session: AsyncSession,
    store: BlobStore,
    snapshot: SnapshotRow,
    base_image: bytes | None,
    options: PipelineOptions,
) -> SnapshotRow | None:
    snapshot_id = snapshot.snapshot_id
    comparison = await _decode(await store.get(snapshot.comparison_image_key))
    dims = {"width": comparison.width, "height": comparison.height}

    baseline = None
    if base_image is None:
        build = await BuildRepository(session).get(snapshot.build_id)
        if build is None:
            logger.info("snapshot_result_discarded", extra={"snapshot_id": snapshot_id})
            return None
        try:
            baseline = await _resolve_for(session, build, snapshot, options)
        except NoBaseline:
            return await _bootstrap(session, store, build, snapshot, dims)
        base_key = await store.copy(baseline.image_key, snapshot_key(snapshot_id, ImageKind.BASE))
        base_bytes = await store.get(base_key)
    else:
        base_key = await store.put(snapshot_key(snapshot_id, ImageKind.BASE), base_image)
        base_bytes = base_image

    base = await _decode(base_bytes)
    baseline_id = baseline.baseline_id if baseline is not None else None

    try:
        result = await asyncio.to_thread(compare, base, comparison, options.diff)
    except DimensionMismatch as exc:
        status = SnapshotStatus.FAILED if options.dimension_mismatch_fails else SnapshotStatus.COMPLETED
        logger.warning(
            "snapshot_dimension_mismatch",
            extra={"snapshot_id": snapshot_id, "base": exc.base_size, "comparison": exc.comparison_size},
        )
        return await _apply(
            session,
            snapshot_id,
            status=status,
            baseline_id=baseline_id,
            base_image_key=base_key,
            diff_percentage=exc.diff_percentage,
            diff_pixels=0,
            failure_reason=FailureReason.DIMENSION_MISMATCH,
            failure_message=exc.message,
            **dims,
        )

    diff_key = None
    if result.diff_pixels > 0:
        mask_png = await asyncio.to_thread(codec.encode, result.mask)
        diff_key = await store.put(snapshot_key(snapshot_id, ImageKind.DIFF), mask_png)

    completed = await _apply(
        session,
        snapshot_id,
        status=SnapshotStatus.COMPLETED,
        baseline_id=baseline_id,
        base_image_key=base_key,
        diff_image_key=diff_key,
        diff_percentage=result.diff_percentage,
        diff_pixels=result.diff_pixels,
        **dims,
    )
    if completed is not None:
        logger.info(
            "snapshot_completed",
            extra={
                "snapshot_id": snapshot_id,
                "diff_percentage": result.diff_percentage,
                "diff_pixels": result.diff_pixels,
            },
        )
    return completed


async def _resolve_for(session: AsyncSession, build: BuildRow, snapshot: SnapshotRow, options: PipelineOptions):
    fallback = None
    if options.branch_fallback:
        project = await ProjectRepository(session).get(build.project_id)
        fallback = project.default_branch if project is not None else None
    return await baseline_resolver.resolve(
        session,
        build.project_id,
        snapshot.name,
        build.branch,
        snapshot.browser,
        snapshot.viewport,
        fallback_branch=fallback,
    )


async def _bootstrap(
    session: AsyncSession, store: BlobStore, build: BuildRow, snapshot: SnapshotRow, dims: dict
) -> SnapshotRow | None:
    """First snapshot of a tuple: nothing to diff, so it becomes the baseline."""
    snapshot_id = snapshot.snapshot_id
    comparison_key = snapshot.comparison_image_key
    browser, viewport = snapshot.browser, snapshot.viewport
    completed = await _apply(
        session,
        snapshot_id,
        status=SnapshotStatus.COMPLETED,
        diff_percentage=0.0,
        diff_pixels=0,
        **dims,
    )
    if completed is None:
        return None

    try:
        await baseline_resolver.install_baseline(
            session,
            store,
            project_id=build.project_id,
            name=completed.name,
            branch=build.branch,
            browser=browser,
            viewport=viewport,
            source_key=comparison_key,
            source_snapshot_id=snapshot_id,
            **dims,
        )
    except PromotionConflict:
        logger.info("baseline_bootstrap_race_lost", extra={"snapshot_id": snapshot_id})
    except StorageError as exc:
        logger.warning(
            "baseline_bootstrap_failed",
            extra={"snapshot_id": snapshot_id, "reason": exc.message},
        )
    return await _refetch(session, snapshot_id)
