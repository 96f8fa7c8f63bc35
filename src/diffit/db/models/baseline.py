"""Baseline history and current-baseline pointer tables."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from diffit.db.base import Base, TimestampMixin


class BaselineRow(Base, TimestampMixin):
    """An accepted reference image. Immutable apart from retirement."""

    __tablename__ = "baselines"
    __table_args__ = (
        Index(
            "ix_baselines_tuple",
            "project_id", "name", "branch", "browser", "viewport",
        ),
    )

    baseline_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch: Mapped[str] = mapped_column(String(255), nullable=False)
    browser: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    viewport: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    image_key: Mapped[str] = mapped_column(String(500), nullable=False)
    source_snapshot_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    retired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BaselinePointerRow(Base, TimestampMixin):
    """Exactly one row per baseline tuple; ``version`` guards promotion swaps."""

    __tablename__ = "baseline_pointers"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "name", "branch", "browser", "viewport",
            name="uq_baseline_pointers_tuple",
        ),
    )

    pointer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch: Mapped[str] = mapped_column(String(255), nullable=False)
    browser: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    viewport: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    current_baseline_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
