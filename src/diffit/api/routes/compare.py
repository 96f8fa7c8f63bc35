"""Ad-hoc comparison of two uploaded images, nothing persisted."""

import asyncio

from fastapi import APIRouter, File, Form, Response, UploadFile

from diffit.config import settings
from diffit.dependencies import read_upload
from diffit.imaging import codec
from diffit.imaging.diff_engine import DiffOptions, compare

router = APIRouter(tags=["Compare"])


@router.post("/compare")
async def compare_images(
    file_base: UploadFile = File(..., alias="file-base"),
    file_other: UploadFile = File(..., alias="file-other"),
    threshold: float | None = Form(None),
    antialiasing: bool | None = Form(None),
) -> Response:
    """Return the PNG diff mask; counts are reported in response headers."""
    options = DiffOptions(
        threshold=settings.diff_threshold if threshold is None else threshold,
        antialiasing=settings.diff_antialiasing if antialiasing is None else antialiasing,
        precision=settings.diff_precision,
    )
    base = await asyncio.to_thread(codec.decode, await read_upload(file_base, "file-base"))
    other = await asyncio.to_thread(codec.decode, await read_upload(file_other, "file-other"))

    result = await asyncio.to_thread(compare, base, other, options)
    mask_png = await asyncio.to_thread(codec.encode, result.mask)
    return Response(
        content=mask_png,
        media_type="image/png",
        headers={
            "X-Diff-Percentage": f"{result.diff_percentage}",
            "X-Diff-Pixels": str(result.diff_pixels),
            "X-Total-Pixels": str(result.total_pixels),
        },
    )
