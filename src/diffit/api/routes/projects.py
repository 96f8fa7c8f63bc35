"""Project CRUD API routes."""

import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.project import ProjectRow
from diffit.dependencies import get_blob_store, get_db, get_pagination
from diffit.errors.exceptions import ConflictError, NotFoundError
from diffit.models.baseline import Baseline
from diffit.models.build import Build
from diffit.models.common import Page, Pagination
from diffit.models.project import Project, ProjectCreate, ProjectUpdate
from diffit.repositories.baseline_repo import BaselineRepository
from diffit.repositories.build_repo import BuildRepository
from diffit.repositories.project_repo import ProjectRepository
from diffit.services.cleanup import delete_project as cascade_delete_project
from diffit.services.id_generator import PROJECT_PREFIX, generate_id
from diffit.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Projects"])


async def _get_or_404(repo: ProjectRepository, project_id: str) -> ProjectRow:
    row = await repo.get(project_id)
    if not row:
        raise NotFoundError("Project", project_id)
    return row


def _dump(row: ProjectRow) -> dict:
    return Project.model_validate(row).model_dump(mode="json", exclude_none=True)


@router.get("/projects")
async def list_projects(
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows, total = await ProjectRepository(db).list_page(pagination)
    return Page.build([Project.model_validate(r) for r in rows], total, pagination).model_dump(
        mode="json", exclude_none=True
    )


@router.post("/projects", status_code=201)
async def create_project(
    project: ProjectCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    repo = ProjectRepository(db)
    if await repo.get_by_slug(project.slug):
        raise ConflictError(f"Project slug '{project.slug}' is already taken", {"slug": project.slug})

    try:
        row = await repo.create(project_id=generate_id(PROJECT_PREFIX), **project.model_dump())
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(f"Project slug '{project.slug}' is already taken", {"slug": project.slug}) from exc
    logger.info("project_created", extra={"project_id": row.project_id, "slug": row.slug})
    return _dump(row)


@router.get("/projects/slug/{slug}")
async def get_project_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await ProjectRepository(db).get_by_slug(slug)
    if not row:
        raise NotFoundError("Project", slug)
    return _dump(row)


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    return _dump(await _get_or_404(ProjectRepository(db), project_id))


@router.put("/projects/{project_id}")
async def update_project(
    project_id: str,
    project: ProjectUpdate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    repo = ProjectRepository(db)
    row = await _get_or_404(repo, project_id)

    changes = project.model_dump(exclude_unset=True)
    if changes.get("slug") and changes["slug"] != row.slug:
        if await repo.get_by_slug(changes["slug"]):
            raise ConflictError(f"Project slug '{changes['slug']}' is already taken", {"slug": changes["slug"]})
    for required in ("name", "slug", "default_branch"):
        if required in changes and changes[required] is None:
            del changes[required]

    await repo.update(row, **changes)
    await db.commit()
    return _dump(row)


@router.delete("/projects/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> Response:
    row = await _get_or_404(ProjectRepository(db), project_id)
    await cascade_delete_project(db, store, row)
    return Response(status_code=204)


@router.get("/projects/{project_id}/builds")
async def list_project_builds(
    project_id: str,
    branch: str | None = Query(None),
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _get_or_404(ProjectRepository(db), project_id)
    rows, total = await BuildRepository(db).list_for_project(project_id, pagination, branch=branch)
    return Page.build([Build.model_validate(r) for r in rows], total, pagination).model_dump(
        mode="json", exclude_none=True
    )


@router.get("/projects/{project_id}/builds/latest")
async def get_latest_build(
    project_id: str,
    branch: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _get_or_404(ProjectRepository(db), project_id)
    row = await BuildRepository(db).latest(project_id, branch=branch)
    if not row:
        raise NotFoundError("Build", f"latest for {project_id}" + (f"@{branch}" if branch else ""))
    return Build.model_validate(row).model_dump(mode="json", exclude_none=True)


@router.get("/projects/{project_id}/baselines")
async def list_project_baselines(
    project_id: str,
    branch: str | None = Query(None),
    include_retired: bool = Query(False),
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _get_or_404(ProjectRepository(db), project_id)
    rows, total = await BaselineRepository(db).list_page(
        pagination, project_id=project_id, branch=branch, include_retired=include_retired
    )
    return Page.build([Baseline.model_validate(r) for r in rows], total, pagination).model_dump(
        mode="json", exclude_none=True
    )
