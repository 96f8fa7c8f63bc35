"""Baseline and baseline pointer repositories."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.baseline import BaselinePointerRow, BaselineRow
from diffit.models.common import Pagination
from diffit.repositories.base import BaseRepository


class BaselineRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, BaselineRow)

    async def get(self, baseline_id: str) -> BaselineRow | None:
        return await self.get_by_id("baseline_id", baseline_id)

    async def list_page(
        self,
        pagination: Pagination,
        project_id: str | None = None,
        branch: str | None = None,
        include_retired: bool = False,
    ) -> tuple[list[BaselineRow], int]:
        stmt = select(BaselineRow)
        if project_id:
            stmt = stmt.where(BaselineRow.project_id == project_id)
        if branch:
            stmt = stmt.where(BaselineRow.branch == branch)
        if not include_retired:
            stmt = stmt.where(BaselineRow.is_current.is_(True))
        stmt = stmt.order_by(BaselineRow.name, BaselineRow.branch, BaselineRow.version.desc())
        return await self.paginate(stmt, pagination)

    async def ids_for_project(self, project_id: str) -> list[str]:
        stmt = select(BaselineRow.baseline_id).where(BaselineRow.project_id == project_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class BaselinePointerRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, BaselinePointerRow)

    async def get_for_tuple(
        self, project_id: str, name: str, branch: str, browser: str, viewport: str
    ) -> BaselinePointerRow | None:
        stmt = select(BaselinePointerRow).where(
            BaselinePointerRow.project_id == project_id,
            BaselinePointerRow.name == name,
            BaselinePointerRow.branch == branch,
            BaselinePointerRow.browser == browser,
            BaselinePointerRow.viewport == viewport,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_baseline(self, baseline_id: str) -> BaselinePointerRow | None:
        return await self.get_by_id("current_baseline_id", baseline_id)

    async def compare_and_swap(
        self, pointer_id: str, expected_version: int, new_baseline_id: str | None
    ) -> bool:
        """Move the pointer only if nobody advanced it since ``expected_version`` was read."""
        stmt = (
            update(BaselinePointerRow)
            .where(
                BaselinePointerRow.pointer_id == pointer_id,
                BaselinePointerRow.version == expected_version,
            )
            .values(current_baseline_id=new_baseline_id, version=expected_version + 1)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
