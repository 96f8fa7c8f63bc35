"""Project table."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from diffit.db.base import Base, TimestampMixin


class ProjectRow(Base, TimestampMixin):
    __tablename__ = "projects"

    project_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    default_branch: Mapped[str] = mapped_column(String(255), nullable=False, default="main")
    repository_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
