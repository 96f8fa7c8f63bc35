"""Build lifecycle and snapshot listing routes."""

import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.build import BuildRow
from diffit.dependencies import get_blob_store, get_db, get_pagination
from diffit.errors.exceptions import ConflictError, NotFoundError
from diffit.models.build import Build, BuildCreate
from diffit.models.common import Page, Pagination
from diffit.models.enums import BuildStatus, ReviewStatus, SnapshotStatus
from diffit.models.snapshot import Snapshot
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.project_repo import ProjectRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services.build_aggregator import finalize_build as finalize
from diffit.services.cleanup import delete_build as cascade_delete_build
from diffit.services.id_generator import BUILD_PREFIX, generate_id
from diffit.services.locks import project_locks
from diffit.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Builds"])


async def _get_or_404(repo: BuildRepository, build_id: str) -> BuildRow:
    row = await repo.get(build_id)
    if not row:
        raise NotFoundError("Build", build_id)
    return row


def _dump(row: BuildRow) -> dict:
    return Build.model_validate(row).model_dump(mode="json", exclude_none=True)


@router.post("/builds", status_code=201)
async def create_build(
    build: BuildCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    if not await ProjectRepository(db).get(build.project_id):
        raise NotFoundError("Project", build.project_id)

    repo = BuildRepository(db)
    async with project_locks.hold(build.project_id):
        try:
            row = await repo.create(
                build_id=generate_id(BUILD_PREFIX),
                build_number=await repo.next_build_number(build.project_id),
                status=BuildStatus.PENDING,
                **build.model_dump(),
            )
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise ConflictError("Build number already allocated, retry the request") from exc

    logger.info(
        "build_created",
        extra={"build_id": row.build_id, "project_id": row.project_id, "build_number": row.build_number},
    )
    return _dump(row)


@router.get("/builds/{build_id}")
async def get_build(
    build_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return _dump(await _get_or_404(BuildRepository(db), build_id))


@router.delete("/builds/{build_id}", status_code=204)
async def delete_build(
    build_id: str,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> Response:
    row = await _get_or_404(BuildRepository(db), build_id)
    await cascade_delete_build(db, store, row)
    return Response(status_code=204)


@router.post("/builds/{build_id}/finalize")
async def finalize_build(
    build_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return _dump(await finalize(db, build_id))


@router.get("/builds/{build_id}/snapshots")
async def list_build_snapshots(
    build_id: str,
    review_status: ReviewStatus | None = Query(None),
    status: SnapshotStatus | None = Query(None),
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _get_or_404(BuildRepository(db), build_id)
    rows, total = await SnapshotRepository(db).list_for_build(
        build_id, pagination, review_status=review_status, status=status
    )
    return Page.build([Snapshot.model_validate(r) for r in rows], total, pagination).model_dump(
        mode="json", exclude_none=True
    )


@router.get("/builds/{build_id}/snapshots/changed")
async def list_changed_snapshots(
    build_id: str,
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _get_or_404(BuildRepository(db), build_id)
    rows, total = await SnapshotRepository(db).list_changed(build_id, pagination)
    return Page.build([Snapshot.model_validate(r) for r in rows], total, pagination).model_dump(
        mode="json", exclude_none=True
    )
