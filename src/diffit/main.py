"""FastAPI application factory and lifespan management."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from diffit import __version__
from diffit.config import settings
from diffit.db.engine import create_db_engine, create_session_factory
from diffit.logging_config import configure_logging
from diffit.storage.blob_store import BlobStore

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev, no Alembic migrations)
    if "sqlite" in db_url:
        from diffit.db.base import Base
        import diffit.db.models  # noqa: F401  register all ORM models

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables created (local mode)")

    Path(settings.storage_path).mkdir(parents=True, exist_ok=True)
    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)
    app.state.blob_store = BlobStore(settings.storage_path)

    logger.info(
        "Diffit API started (db=%s, storage=%s)",
        "sqlite" if "sqlite" in db_url else "postgresql",
        app.state.blob_store.root,
    )
    yield

    await engine.dispose()
    logger.info("Diffit API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Diffit API",
        version=__version__,
        description="Visual regression backend: screenshot diffing, baselines and review workflow.",
        lifespan=lifespan,
    )

    # CORS middleware for the review UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Trace-Id", "X-Diff-Percentage", "X-Diff-Pixels", "X-Total-Pixels"],
    )

    from diffit.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from diffit.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Prometheus metrics (internal endpoint)
    try:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator(
            should_group_status_codes=True,
            should_respect_env_var=False,
            excluded_handlers=["/api/health.*", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    except ImportError:
        logger.debug("prometheus-fastapi-instrumentator not installed, /metrics disabled")

    from diffit.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
