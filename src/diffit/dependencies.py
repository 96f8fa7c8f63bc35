"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator

from fastapi import Query, Request, UploadFile

from diffit.config import settings
from diffit.errors.exceptions import ValidationError
from diffit.models.common import DEFAULT_PER_PAGE, Pagination
from diffit.storage.blob_store import BlobStore


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


def get_blob_store(request: Request) -> BlobStore:
    """Return the blob store from app state."""
    return request.app.state.blob_store


def get_pagination(
    page: int = Query(1, description="1-based page number"),
    per_page: int = Query(DEFAULT_PER_PAGE, description="Items per page, 1..100"),
) -> Pagination:
    """Out-of-range values are clamped rather than rejected."""
    return Pagination.clamp(page, per_page)


async def read_upload(upload: UploadFile, field: str) -> bytes:
    """Read an uploaded file, enforcing the configured size limit."""
    data = await upload.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(
            f"Upload '{field}' exceeds {settings.max_upload_bytes} bytes",
            {"field": field, "max_bytes": settings.max_upload_bytes},
        )
    if not data:
        raise ValidationError(f"Upload '{field}' is empty", {"field": field})
    return data

