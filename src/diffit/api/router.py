"""Master API router mounted at /api."""

from fastapi import APIRouter

from diffit.api.routes import baselines, builds, compare, health, projects, snapshots

api_router = APIRouter(prefix="/api")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(projects.router)
api_router.include_router(builds.router)
api_router.include_router(snapshots.router)
api_router.include_router(baselines.router)
api_router.include_router(compare.router)
