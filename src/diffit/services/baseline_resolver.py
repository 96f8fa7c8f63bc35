"""Current-baseline lookup and promotion.

A baseline tuple is (project, name, branch, browser, viewport). Each tuple
has one ``BaselinePointerRow`` naming its current baseline; promotion writes
a new immutable ``BaselineRow`` and swaps the pointer with a
compare-and-swap on ``pointer.version``, so at most one promotion per tuple
can win even across processes.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.baseline import BaselineRow
from diffit.db.models.snapshot import SnapshotRow
from diffit.errors.exceptions import ConflictError, NoBaseline, NotFoundError, PromotionConflict
from diffit.models.enums import ReviewStatus, SnapshotStatus
from diffit.repositories.baseline_repo import BaselinePointerRepository, BaselineRepository
from diffit.repositories.build_repo import BuildRepository
from diffit.services.id_generator import BASELINE_PREFIX, POINTER_PREFIX, generate_id
from diffit.services.locks import promotion_locks
from diffit.storage.blob_store import BlobStore, baseline_key, baseline_prefix

logger = logging.getLogger(__name__)


def tuple_key(project_id: str, name: str, branch: str, browser: str, viewport: str) -> str:
    return "\x1f".join((project_id, name, branch, browser, viewport))


async def _current_for(
    session: AsyncSession, project_id: str, name: str, branch: str, browser: str, viewport: str
) -> BaselineRow | None:
    pointer = await BaselinePointerRepository(session).get_for_tuple(
        project_id, name, branch, browser, viewport
    )
    if pointer is None or pointer.current_baseline_id is None:
        return None
    return await BaselineRepository(session).get(pointer.current_baseline_id)


async def resolve(
    session: AsyncSession,
    project_id: str,
    name: str,
    branch: str,
    browser: str = "",
    viewport: str = "",
    fallback_branch: str | None = None,
) -> BaselineRow:
    """Return the current baseline for the tuple.

    When the branch has none and ``fallback_branch`` is given (normally the
    project's default branch), the fallback branch's baseline is used so
    feature branches compare against mainline until they get their own.

    Raises:
        NoBaseline: if neither branch has a current baseline.
    """
    baseline = await _current_for(session, project_id, name, branch, browser, viewport)
    if baseline is not None:
        return baseline
    if fallback_branch and fallback_branch != branch:
        baseline = await _current_for(session, project_id, name, fallback_branch, browser, viewport)
        if baseline is not None:
            logger.debug(
                "baseline_resolved_from_fallback",
                extra={"snapshot_name": name, "branch": branch, "fallback_branch": fallback_branch},
            )
            return baseline
    raise NoBaseline(name, branch)


async def install_baseline(
    session: AsyncSession,
    store: BlobStore,
    *,
    project_id: str,
    name: str,
    branch: str,
    browser: str,
    viewport: str,
    width: int,
    height: int,
    image: bytes | None = None,
    source_key: str | None = None,
    source_snapshot_id: str | None = None,
) -> BaselineRow:
    """Make a new baseline current for its tuple and retire the previous one.

    The image comes either from raw ``image`` bytes or by copying an existing
    blob at ``source_key``. Commits on success. On a lost race the session is
    rolled back, the new blob removed and ``PromotionConflict`` raised, so
    callers must commit their own pending work before calling this.
    """
    if (image is None) == (source_key is None):
        raise ValueError("exactly one of image or source_key is required")

    key = tuple_key(project_id, name, branch, browser, viewport)
    async with promotion_locks.hold_nowait(key, PromotionConflict):
        pointers = BaselinePointerRepository(session)
        baselines = BaselineRepository(session)
        baseline_id = generate_id(BASELINE_PREFIX)
        image_key = baseline_key(baseline_id)

        if image is not None:
            await store.put(image_key, image)
        else:
            await store.copy(source_key, image_key)

        try:
            pointer = await pointers.get_for_tuple(project_id, name, branch, browser, viewport)
            if pointer is None:
                pointer = await pointers.create(
                    pointer_id=generate_id(POINTER_PREFIX),
                    project_id=project_id,
                    name=name,
                    branch=branch,
                    browser=browser,
                    viewport=viewport,
                    current_baseline_id=None,
                    version=0,
                )
            expected_version = pointer.version
            previous_id = pointer.current_baseline_id

            baseline = await baselines.create(
                baseline_id=baseline_id,
                project_id=project_id,
                name=name,
                branch=branch,
                browser=browser,
                viewport=viewport,
                width=width,
                height=height,
                image_key=image_key,
                source_snapshot_id=source_snapshot_id,
                version=expected_version + 1,
                is_current=True,
            )
            if not await pointers.compare_and_swap(pointer.pointer_id, expected_version, baseline_id):
                raise PromotionConflict("Baseline pointer moved during promotion")

            if previous_id:
                previous = await baselines.get(previous_id)
                if previous is not None:
                    await baselines.update(
                        previous, is_current=False, retired_at=datetime.now(timezone.utc)
                    )
            await session.commit()
        except (PromotionConflict, IntegrityError) as exc:
            await session.rollback()
            await store.delete_prefix(baseline_prefix(baseline_id))
            logger.warning(
                "baseline_promotion_conflict",
                extra={"snapshot_name": name, "branch": branch, "project_id": project_id},
            )
            if isinstance(exc, PromotionConflict):
                raise
            raise PromotionConflict() from exc

    logger.info(
        "baseline_installed",
        extra={
            "baseline_id": baseline_id,
            "snapshot_name": name,
            "branch": branch,
            "version": baseline.version,
            "source_snapshot_id": source_snapshot_id,
        },
    )
    return baseline


async def promote(session: AsyncSession, store: BlobStore, snapshot: SnapshotRow) -> BaselineRow:
    """Promote an approved, completed snapshot's comparison image to current baseline."""
    if snapshot.status != SnapshotStatus.COMPLETED:
        raise ConflictError(
            f"Snapshot '{snapshot.snapshot_id}' is {snapshot.status}; only completed snapshots can be promoted"
        )
    if snapshot.review_status != ReviewStatus.APPROVED:
        raise ConflictError(f"Snapshot '{snapshot.snapshot_id}' is not approved")
    if not snapshot.comparison_image_key or snapshot.width is None or snapshot.height is None:
        raise ConflictError(f"Snapshot '{snapshot.snapshot_id}' has no comparison image")

    build = await BuildRepository(session).get(snapshot.build_id)
    if build is None:
        raise NotFoundError("Build", snapshot.build_id)

    current = await _current_for(
        session, build.project_id, snapshot.name, build.branch, snapshot.browser, snapshot.viewport
    )
    if current is not None and current.source_snapshot_id == snapshot.snapshot_id:
        return current

    return await install_baseline(
        session,
        store,
        project_id=build.project_id,
        name=snapshot.name,
        branch=build.branch,
        browser=snapshot.browser,
        viewport=snapshot.viewport,
        width=snapshot.width,
        height=snapshot.height,
        source_key=snapshot.comparison_image_key,
        source_snapshot_id=snapshot.snapshot_id,
    )


async def delete_baseline(session: AsyncSession, store: BlobStore, baseline: BaselineRow) -> None:
    """Delete a baseline. Deleting the current one clears its tuple's pointer."""
    key = tuple_key(
        baseline.project_id, baseline.name, baseline.branch, baseline.browser, baseline.viewport
    )
    async with promotion_locks.hold_nowait(key, PromotionConflict):
        pointers = BaselinePointerRepository(session)
        pointer = await pointers.get_for_baseline(baseline.baseline_id)
        if pointer is not None:
            if not await pointers.compare_and_swap(pointer.pointer_id, pointer.version, None):
                await session.rollback()
                raise PromotionConflict("Baseline pointer moved during deletion")
        baseline_id = baseline.baseline_id
        await BaselineRepository(session).delete(baseline)
        await session.commit()

    await store.delete_prefix(baseline_prefix(baseline_id))
    logger.info(
        "baseline_deleted",
        extra={"baseline_id": baseline_id, "was_current": pointer is not None},
    )
