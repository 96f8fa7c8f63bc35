"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from diffit.db.models.project import ProjectRow
from diffit.db.models.build import BuildRow
from diffit.db.models.snapshot import SnapshotRow
from diffit.db.models.baseline import BaselineRow, BaselinePointerRow

__all__ = [
    "ProjectRow",
    "BuildRow",
    "SnapshotRow",
    "BaselineRow",
    "BaselinePointerRow",
]
