"""Snapshot table."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from diffit.db.base import Base, TimestampMixin


class SnapshotRow(Base, TimestampMixin):
    __tablename__ = "snapshots"
    __table_args__ = (
        Index("ix_snapshots_build_status", "build_id", "status"),
        Index("ix_snapshots_build_review", "build_id", "review_status"),
    )

    snapshot_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    build_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("builds.build_id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Baseline the diff was computed against; no FK so baseline deletion keeps history.
    baseline_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    browser: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    viewport: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)

    base_image_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    comparison_image_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    diff_image_key: Mapped[str | None] = mapped_column(String(500), nullable=True)

    diff_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    diff_pixels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    failure_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    review_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unreviewed")
    reviewed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
