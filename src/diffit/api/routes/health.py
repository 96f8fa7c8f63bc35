"""Health check endpoints."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from diffit import __version__

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Return service health status."""
    return {"status": "healthy", "service": "diffit-api", "version": __version__}


@router.get("/health/live")
async def liveness():
    """Liveness probe: 200 whenever the process is serving requests."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(request: Request):
    """Readiness probe: checks database connectivity and blob storage."""
    checks: dict[str, str] = {}
    overall_ok = True

    try:
        session_factory = request.app.state.db_session_factory
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("readiness_database_failed", extra={"reason": str(exc)})
        checks["database"] = f"error: {exc}"
        overall_ok = False

    store = getattr(request.app.state, "blob_store", None)
    if store is not None and store.root.is_dir():
        checks["storage"] = "ok"
    else:
        checks["storage"] = "error: storage root missing"
        overall_ok = False

    status_code = 200 if overall_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if overall_ok else "not_ready",
            "checks": checks,
        },
    )
