"""Build table."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from diffit.db.base import Base, TimestampMixin


class BuildRow(Base, TimestampMixin):
    __tablename__ = "builds"
    __table_args__ = (
        UniqueConstraint("project_id", "build_number", name="uq_builds_project_number"),
        Index("ix_builds_project_branch", "project_id", "branch"),
    )

    build_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False, index=True
    )
    build_number: Mapped[int] = mapped_column(Integer, nullable=False)
    branch: Mapped[str] = mapped_column(String(255), nullable=False)
    commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    commit_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    pull_request_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expected_snapshots: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Derived from the snapshot set by the build aggregator; never incremented.
    total_snapshots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    changed_snapshots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approved_snapshots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_snapshots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_snapshots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
