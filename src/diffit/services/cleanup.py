"""Cascading deletion of builds and projects, database rows and blobs."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.build import BuildRow
from diffit.db.models.project import ProjectRow
from diffit.errors.exceptions import ConflictError
from diffit.repositories.baseline_repo import BaselinePointerRepository, BaselineRepository
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.project_repo import ProjectRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services.locks import build_locks, project_locks
from diffit.storage.blob_store import BlobStore, baseline_prefix, snapshot_prefix

logger = logging.getLogger(__name__)


async def _purge_build(session: AsyncSession, build: BuildRow) -> list[str]:
    snapshots = SnapshotRepository(session)
    snapshot_ids = await snapshots.ids_for_build(build.build_id)
    await snapshots.delete_by_field("build_id", build.build_id)
    await BuildRepository(session).delete(build)
    return snapshot_ids


async def delete_build(session: AsyncSession, store: BlobStore, build: BuildRow) -> None:
    """Delete a build with its snapshots. Diffs still running are discarded on completion."""
    build_id = build.build_id
    async with build_locks.hold(build_id):
        snapshot_ids = await _purge_build(session, build)
        await session.commit()
    for snapshot_id in snapshot_ids:
        await store.delete_prefix(snapshot_prefix(snapshot_id))
    logger.info("build_deleted", extra={"build_id": build_id, "snapshots": len(snapshot_ids)})


async def delete_project(session: AsyncSession, store: BlobStore, project: ProjectRow) -> None:
    """Delete a project and everything under it.

    Raises:
        ConflictError: while any build of the project is pending or processing.
    """
    project_id = project.project_id
    async with project_locks.hold(project_id):
        builds = BuildRepository(session)
        active = await builds.count_active(project_id)
        if active:
            raise ConflictError(
                f"Project '{project_id}' has {active} build(s) still in progress",
                {"project_id": project_id, "active_builds": active},
            )

        snapshot_ids: list[str] = []
        for build in await builds.list_by_field("project_id", project_id):
            snapshot_ids.extend(await _purge_build(session, build))

        baselines = BaselineRepository(session)
        baseline_ids = await baselines.ids_for_project(project_id)
        await BaselinePointerRepository(session).delete_by_field("project_id", project_id)
        await baselines.delete_by_field("project_id", project_id)
        await ProjectRepository(session).delete(project)
        await session.commit()

    for snapshot_id in snapshot_ids:
        await store.delete_prefix(snapshot_prefix(snapshot_id))
    for baseline_id in baseline_ids:
        await store.delete_prefix(baseline_prefix(baseline_id))
    logger.info(
        "project_deleted",
        extra={"project_id": project_id, "snapshots": len(snapshot_ids), "baselines": len(baseline_ids)},
    )
