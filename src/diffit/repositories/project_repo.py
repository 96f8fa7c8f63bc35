"""Project repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.project import ProjectRow
from diffit.models.common import Pagination
from diffit.repositories.base import BaseRepository


class ProjectRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, ProjectRow)

    async def get(self, project_id: str) -> ProjectRow | None:
        return await self.get_by_id("project_id", project_id)

    async def get_by_slug(self, slug: str) -> ProjectRow | None:
        return await self.get_by_id("slug", slug)

    async def list_page(self, pagination: Pagination) -> tuple[list[ProjectRow], int]:
        stmt = select(ProjectRow).order_by(ProjectRow.name, ProjectRow.project_id)
        return await self.paginate(stmt, pagination)
