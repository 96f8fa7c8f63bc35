"""Snapshot repository."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from diffit.db.models.snapshot import SnapshotRow
from diffit.models.common import Pagination
from diffit.models.enums import SnapshotStatus
from diffit.repositories.base import BaseRepository


class SnapshotRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, SnapshotRow)

    async def get(self, snapshot_id: str) -> SnapshotRow | None:
        return await self.get_by_id("snapshot_id", snapshot_id)

    async def list_for_build(
        self,
        build_id: str,
        pagination: Pagination,
        review_status: str | None = None,
        status: str | None = None,
    ) -> tuple[list[SnapshotRow], int]:
        stmt = select(SnapshotRow).where(SnapshotRow.build_id == build_id)
        if review_status:
            stmt = stmt.where(SnapshotRow.review_status == review_status)
        if status:
            stmt = stmt.where(SnapshotRow.status == status)
        stmt = stmt.order_by(SnapshotRow.name, SnapshotRow.snapshot_id)
        return await self.paginate(stmt, pagination)

    async def list_changed(self, build_id: str, pagination: Pagination) -> tuple[list[SnapshotRow], int]:
        """Completed snapshots with a non-zero diff, largest change first."""
        stmt = (
            select(SnapshotRow)
            .where(
                SnapshotRow.build_id == build_id,
                SnapshotRow.status == SnapshotStatus.COMPLETED,
                SnapshotRow.diff_percentage > 0,
            )
            .order_by(SnapshotRow.diff_percentage.desc(), SnapshotRow.snapshot_id)
        )
        return await self.paginate(stmt, pagination)

    async def count_by_status(self, build_id: str) -> dict[str, int]:
        stmt = (
            select(SnapshotRow.status, func.count())
            .where(SnapshotRow.build_id == build_id)
            .group_by(SnapshotRow.status)
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def ids_for_build(self, build_id: str) -> list[str]:
        stmt = select(SnapshotRow.snapshot_id).where(SnapshotRow.build_id == build_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
