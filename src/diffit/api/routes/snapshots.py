"""Snapshot submission, review and image routes."""

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.dependencies import get_blob_store, get_db, read_upload
from diffit.errors.exceptions import NotFoundError
from diffit.models.enums import ImageKind
from diffit.models.snapshot import (
    BatchReviewFailure,
    BatchReviewRequest,
    BatchReviewResponse,
    ReviewRequest,
    ReviewResponse,
    Snapshot,
)
from diffit.repositories.snapshot_repo import SnapshotRepository
from diffit.services.review import batch_review, review_snapshot
from diffit.services.snapshot_pipeline import resubmit_snapshot as resubmit, submit_snapshot
from diffit.storage.blob_store import BlobStore

router = APIRouter(tags=["Snapshots"])

_IMAGE_KEY_FIELDS = {
    ImageKind.BASE: "base_image_key",
    ImageKind.COMPARISON: "comparison_image_key",
    ImageKind.DIFF: "diff_image_key",
}


def _dump(row) -> dict:
    return Snapshot.model_validate(row).model_dump(mode="json", exclude_none=True)


@router.post("/snapshots", status_code=201)
async def create_snapshot(
    build_id: str = Form(...),
    name: str = Form(...),
    browser: str | None = Form(None),
    viewport: str | None = Form(None),
    image: UploadFile = File(...),
    base_image: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Upload a screenshot into a build and diff it against the current baseline."""
    image_data = await read_upload(image, "image")
    base_data = await read_upload(base_image, "base_image") if base_image is not None else None
    row = await submit_snapshot(
        db,
        store,
        build_id,
        name,
        image_data,
        browser=browser,
        viewport=viewport,
        base_image=base_data,
    )
    return _dump(row)


@router.post("/snapshots/batch-review")
async def batch_review_snapshots(
    body: BatchReviewRequest,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict:
    result = await batch_review(db, store, body.snapshot_ids, body.action, body.reviewed_by)
    return BatchReviewResponse(
        updated=result.updated,
        failed=[BatchReviewFailure(**vars(f)) for f in result.failed],
        warnings=result.warnings,
    ).model_dump(mode="json")


@router.get("/snapshots/{snapshot_id}")
async def get_snapshot(
    snapshot_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await SnapshotRepository(db).get(snapshot_id)
    if not row:
        raise NotFoundError("Snapshot", snapshot_id)
    return _dump(row)


@router.post("/snapshots/{snapshot_id}/resubmit")
async def resubmit_snapshot(
    snapshot_id: str,
    image: UploadFile | None = File(None),
    base_image: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Retry a completed or failed snapshot, optionally with a new screenshot."""
    image_data = await read_upload(image, "image") if image is not None else None
    base_data = await read_upload(base_image, "base_image") if base_image is not None else None
    row = await resubmit(db, store, snapshot_id, image=image_data, base_image=base_data)
    return _dump(row)


@router.post("/snapshots/{snapshot_id}/review")
async def review(
    snapshot_id: str,
    body: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict:
    outcome = await review_snapshot(db, store, snapshot_id, body.action, body.reviewed_by)
    return ReviewResponse(
        snapshot=Snapshot.model_validate(outcome.snapshot),
        baseline_id=outcome.baseline.baseline_id if outcome.baseline else None,
        warnings=outcome.warnings,
    ).model_dump(mode="json", exclude_none=True)


@router.get("/snapshots/{snapshot_id}/image/{kind}")
async def get_snapshot_image(
    snapshot_id: str,
    kind: ImageKind,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> Response:
    row = await SnapshotRepository(db).get(snapshot_id)
    if not row:
        raise NotFoundError("Snapshot", snapshot_id)
    key = getattr(row, _IMAGE_KEY_FIELDS[kind])
    if not key:
        raise NotFoundError(f"{kind.value.capitalize()} image for snapshot", snapshot_id)
    return Response(content=await store.get(key), media_type="image/png")
