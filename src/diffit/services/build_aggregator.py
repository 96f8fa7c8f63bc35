"""Build counter recomputation and finalization.

Counters are always derived from the full snapshot set in a single UPDATE,
so concurrent snapshot completions cannot lose increments.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.config import settings
from diffit.db.models.build import BuildRow
from diffit.db.models.snapshot import SnapshotRow
from diffit.errors.exceptions import NotFoundError, NotReady
from diffit.models.enums import (
    FINALIZED_BUILD_STATUSES,
    BuildStatus,
    ReviewStatus,
    SnapshotStatus,
    ZeroDiffPolicy,
)
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services.locks import build_locks

logger = logging.getLogger(__name__)


def _count(*conditions):
    return (
        select(func.count())
        .select_from(SnapshotRow)
        .where(SnapshotRow.build_id == BuildRow.build_id, *conditions)
        .scalar_subquery()
    )


def _approved_condition(policy: ZeroDiffPolicy):
    approved = SnapshotRow.review_status == ReviewStatus.APPROVED
    if policy == ZeroDiffPolicy.COUNT_AS_APPROVED:
        return or_(
            approved,
            and_(SnapshotRow.status == SnapshotStatus.COMPLETED, SnapshotRow.diff_percentage == 0),
        )
    return approved


async def _finalize_locked(session: AsyncSession, build: BuildRow, strict: bool) -> BuildRow | None:
    if build.status in FINALIZED_BUILD_STATUSES:
        return build

    counts = await SnapshotRepository(session).count_by_status(build.build_id)
    in_flight = counts.get(SnapshotStatus.PENDING, 0) + counts.get(SnapshotStatus.PROCESSING, 0)
    if in_flight:
        if strict:
            raise NotReady(build.build_id, in_flight)
        return None

    failed = counts.get(SnapshotStatus.FAILED, 0)
    build.status = BuildStatus.FAILED if failed else BuildStatus.COMPLETED
    build.finished_at = datetime.now(timezone.utc)
    await session.commit()
    logger.info(
        "build_finalized",
        extra={"build_id": build.build_id, "status": build.status, "failed_snapshots": failed},
    )
    return build


async def refresh_build_counters(
    session: AsyncSession,
    build_id: str,
    zero_diff_policy: ZeroDiffPolicy | None = None,
) -> BuildRow | None:
    """Recompute every counter of a build from its snapshots.

    Returns the refreshed build, or ``None`` when the build no longer exists.
    Builds with ``expected_snapshots`` are finalized once that many snapshots
    reached a terminal state.
    """
    policy = zero_diff_policy or settings.zero_diff_policy
    async with build_locks.hold(build_id):
        stmt = (
            update(BuildRow)
            .where(BuildRow.build_id == build_id)
            .values(
                total_snapshots=_count(),
                changed_snapshots=_count(
                    SnapshotRow.status == SnapshotStatus.COMPLETED,
                    SnapshotRow.diff_percentage > 0,
                ),
                approved_snapshots=_count(_approved_condition(policy)),
                failed_snapshots=_count(SnapshotRow.status == SnapshotStatus.FAILED),
                new_snapshots=_count(
                    SnapshotRow.status == SnapshotStatus.COMPLETED,
                    SnapshotRow.baseline_id.is_(None),
                    SnapshotRow.base_image_key.is_(None),
                    SnapshotRow.diff_percentage == 0,
                ),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        await session.commit()
        if result.rowcount == 0:
            logger.info("build_counters_skipped_missing_build", extra={"build_id": build_id})
            return None

        build = await BuildRepository(session).get_fresh(build_id)
        if build is None:
            return None

        if (
            build.expected_snapshots
            and build.status not in FINALIZED_BUILD_STATUSES
            and build.total_snapshots >= build.expected_snapshots
        ):
            await _finalize_locked(session, build, strict=False)
        return build


async def finalize_build(session: AsyncSession, build_id: str) -> BuildRow:
    """Close a build: ``failed`` if any snapshot failed, ``completed`` otherwise.

    Raises:
        NotFoundError: if the build does not exist.
        NotReady: while any snapshot is still pending or processing.
    """
    async with build_locks.hold(build_id):
        build = await BuildRepository(session).get_fresh(build_id)
        if build is None:
            raise NotFoundError("Build", build_id)
        return await _finalize_locked(session, build, strict=True)
