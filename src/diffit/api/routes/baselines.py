"""Baseline listing, upload, promotion and deletion routes."""

import asyncio

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.baseline import BaselineRow
from diffit.dependencies import get_blob_store, get_db, get_pagination, read_upload
from diffit.errors.exceptions import NotFoundError, ValidationError
from diffit.imaging import codec
from diffit.models.baseline import Baseline, PromoteSnapshotRequest
from diffit.models.common import Page, Pagination
from diffit.repositories.baseline_repo import BaselineRepository
from diffit.repositories.project_repo import ProjectRepository
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services import baseline_resolver
from diffit.storage.blob_store import BlobStore

router = APIRouter(tags=["Baselines"])


async def _get_or_404(repo: BaselineRepository, baseline_id: str) -> BaselineRow:
    row = await repo.get(baseline_id)
    if not row:
        raise NotFoundError("Baseline", baseline_id)
    return row


def _dump(row: BaselineRow) -> dict:
    return Baseline.model_validate(row).model_dump(mode="json", exclude_none=True)


@router.get("/baselines")
async def list_baselines(
    project_id: str | None = Query(None),
    branch: str | None = Query(None),
    include_retired: bool = Query(False),
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows, total = await BaselineRepository(db).list_page(
        pagination, project_id=project_id, branch=branch, include_retired=include_retired
    )
    return Page.build([Baseline.model_validate(r) for r in rows], total, pagination).model_dump(
        mode="json", exclude_none=True
    )


@router.post("/baselines", status_code=201)
async def upload_baseline(
    project_id: str = Form(...),
    name: str = Form(...),
    branch: str | None = Form(None),
    browser: str | None = Form(None),
    viewport: str | None = Form(None),
    image: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Install an uploaded image as the current baseline for its tuple."""
    name = name.strip()
    if not name:
        raise ValidationError("Baseline name is required")
    project = await ProjectRepository(db).get(project_id)
    if not project:
        raise NotFoundError("Project", project_id)
    data = await read_upload(image, "image")
    pixels = await asyncio.to_thread(codec.decode, data)

    row = await baseline_resolver.install_baseline(
        db,
        store,
        project_id=project_id,
        name=name,
        branch=branch or project.default_branch,
        browser=browser or "",
        viewport=viewport or "",
        width=pixels.width,
        height=pixels.height,
        image=data,
    )
    return _dump(row)


@router.post("/baselines/from-snapshot", status_code=201)
async def promote_snapshot(
    body: PromoteSnapshotRequest,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Promote an approved snapshot's comparison image to current baseline."""
    snapshot = await SnapshotRepository(db).get(body.snapshot_id)
    if not snapshot:
        raise NotFoundError("Snapshot", body.snapshot_id)
    row = await baseline_resolver.promote(db, store, snapshot)
    return _dump(row)


@router.get("/baselines/{baseline_id}")
async def get_baseline(
    baseline_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return _dump(await _get_or_404(BaselineRepository(db), baseline_id))


@router.delete("/baselines/{baseline_id}", status_code=204)
async def delete_baseline(
    baseline_id: str,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> Response:
    row = await _get_or_404(BaselineRepository(db), baseline_id)
    await baseline_resolver.delete_baseline(db, store, row)
    return Response(status_code=204)


@router.get("/baselines/{baseline_id}/image")
async def get_baseline_image(
    baseline_id: str,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> Response:
    row = await _get_or_404(BaselineRepository(db), baseline_id)
    return Response(content=await store.get(row.image_key), media_type="image/png")
