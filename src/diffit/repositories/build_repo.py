"""Build repository."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.build import BuildRow
from diffit.models.common import Pagination
from diffit.models.enums import BuildStatus
from diffit.repositories.base import BaseRepository


class BuildRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, BuildRow)

    async def get(self, build_id: str) -> BuildRow | None:
        return await self.get_by_id("build_id", build_id)

    async def get_fresh(self, build_id: str) -> BuildRow | None:
        """Like :meth:`get`, but overwrites any copy already in the session."""
        stmt = (
            select(BuildRow)
            .where(BuildRow.build_id == build_id)
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def next_build_number(self, project_id: str) -> int:
        stmt = select(func.coalesce(func.max(BuildRow.build_number), 0)).where(
            BuildRow.project_id == project_id
        )
        current = (await self.session.execute(stmt)).scalar_one()
        return int(current) + 1

    async def list_for_project(
        self, project_id: str, pagination: Pagination, branch: str | None = None
    ) -> tuple[list[BuildRow], int]:
        stmt = select(BuildRow).where(BuildRow.project_id == project_id)
        if branch:
            stmt = stmt.where(BuildRow.branch == branch)
        stmt = stmt.order_by(BuildRow.build_number.desc())
        return await self.paginate(stmt, pagination)

    async def latest(self, project_id: str, branch: str | None = None) -> BuildRow | None:
        stmt = select(BuildRow).where(BuildRow.project_id == project_id)
        if branch:
            stmt = stmt.where(BuildRow.branch == branch)
        stmt = stmt.order_by(BuildRow.build_number.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_active(self, project_id: str) -> int:
        stmt = select(func.count()).select_from(BuildRow).where(
            BuildRow.project_id == project_id,
            BuildRow.status.in_([BuildStatus.PENDING, BuildStatus.PROCESSING]),
        )
        return (await self.session.execute(stmt)).scalar_one()
